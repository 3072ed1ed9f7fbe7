# Routes package init
"""
Spike Server — API Routes Package
==================================

What:  HTTP route handlers that accept requests and return envelopes.

Route Inventory:
    - users.py:   POST /api/v1/auth/register     (create account)
                  POST /api/v1/auth/login        (username or email + password)
                  GET  /api/v1/users/profile     (?user_id=)
    - health.py:  GET  /healthz                  (liveness)

Design Principle:
    Routes should be THIN: read the request context, validate input, call the
    service, wrap the result in the envelope. Business logic lives in services.
"""
