"""
Spike Server — Application Package Initializer
===============================================

What: Marks the `spike` directory as a Python package.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend follows a layered architecture wrapped in a fixed middleware chain:

    ┌─────────────────────────────────────┐
    │   Middleware pipeline (ASGI stages) │  ← request id, recovery, timeout, CORS, access log
    ├─────────────────────────────────────┤
    │     Routes (handlers + envelope)    │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │     Services (business rules)       │  ← registration, login, lookup
    ├─────────────────────────────────────┤
    │   Repositories & Models (data)      │  ← SQLAlchemy ORM
    ├─────────────────────────────────────┤
    │      Database (persistence)         │  ← async engine, sessions, migrations
    └─────────────────────────────────────┘

    Routes translate service exceptions into response envelopes; services never
    see HTTP objects; repositories never see business rules.
"""

__version__ = "0.1.0"
