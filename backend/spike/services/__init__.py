# Services package init
"""
Spike Server — Services Layer
==============================

What:  Business logic layer sitting between routes (HTTP) and repositories (persistence).
How:   Services accept request schemas, apply business rules, and return models.
       They raise SpikeError subclasses; routes never inspect None results.

Service Inventory:
    - UserService: register, login, get_user_by_id, get_user_by_username

Why services are separate from routes:
    1. Testability: Services can be unit-tested with a mocked repository
    2. Single responsibility: Routes handle HTTP; services handle rules
"""
