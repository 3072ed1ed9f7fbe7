"""
Spike Server — Middleware Pipeline Composition
===============================================

What:  Installs the five stages around the router in their one fixed order.
How:   Starlette runs middleware in REVERSE order of `add_middleware` calls
       (last added = outermost), so the stage list is applied back to front.

Execution order (outermost first):

    Request → RequestID → Recovery → Timeout → CORS → AccessLog → router
    Response ←    ...        ←        ...     ←  ...  ←    ...    ← handler

    1. RequestID first: every later stage (including Recovery's envelope) can
       tag its output with the correlation id
    2. Recovery: wraps everything below id assignment, so no fault escapes unlogged
    3. Timeout: bounds CORS, logging and routing
    4. CORS: ahead of the router, so preflights never reach business logic
    5. AccessLog innermost: measures true handler latency and the real status

The order is not configurable and nothing is added or removed at runtime.
"""

from typing import Any, Dict, List, Tuple, Type

from starlette.applications import Starlette

from spike.middleware.access_log import AccessLogMiddleware
from spike.middleware.cors import CORSConfig, CORSMiddleware
from spike.middleware.recovery import RecoveryMiddleware
from spike.middleware.request_id import RequestIDMiddleware
from spike.middleware.timeout import TimeoutMiddleware

STAGE_ORDER: Tuple[Type, ...] = (
    RequestIDMiddleware,
    RecoveryMiddleware,
    TimeoutMiddleware,
    CORSMiddleware,
    AccessLogMiddleware,
)


def pipeline_stages(*, timeout: float, cors: CORSConfig) -> List[Tuple[Type, Dict[str, Any]]]:
    """Stage classes with their constructor options, outermost first."""
    options: Dict[Type, Dict[str, Any]] = {
        TimeoutMiddleware: {"timeout": timeout},
        CORSMiddleware: {"config": cors},
    }
    return [(stage, options.get(stage, {})) for stage in STAGE_ORDER]


def build_pipeline(app: Starlette, *, timeout: float, cors: CORSConfig) -> Starlette:
    """
    Install the stage chain on `app` and return it.

    Args:
        app:     FastAPI/Starlette application (acts as the router)
        timeout: Request timeout in seconds
        cors:    Immutable CORS allow-lists
    """
    for stage, kwargs in reversed(pipeline_stages(timeout=timeout, cors=cors)):
        app.add_middleware(stage, **kwargs)
    return app
