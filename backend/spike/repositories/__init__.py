# Repositories package init
"""
Spike Server — Data Access Layer
=================================

What:  Repositories own every SQL statement; services never build queries.
How:   One repository per aggregate, constructed around a request-scoped
       AsyncSession. Missing rows are returned as None.

Repository Inventory:
    - UserRepository: create, get_by_id, get_by_username, get_by_email,
                      update, delete (soft)
"""
