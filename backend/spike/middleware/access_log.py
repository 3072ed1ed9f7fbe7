"""
Spike Server — Access Log Middleware
=====================================

What:  One structured log event per HTTP request.
How:   Wraps `send` in a StatusRecorder, awaits downstream, then logs method,
       path, final status, duration and request id as structured fields.
Who:   Innermost stage, directly above the router, so the duration is true
       handler latency and the status is the one the handler actually sent.

Log Format (JSON encoding):
    {
        "ts": "2024-01-15T12:00:00",
        "level": "info",
        "logger": "spike.access",
        "msg": "http_access",
        "request_id": "5f0c2b9e-...",
        "method": "POST",
        "path": "/api/v1/auth/login",
        "status": 200,
        "duration_ms": 3.21
    }

Level follows status: 5xx → ERROR, 4xx → WARNING, everything else → INFO.

What we log vs what we DON'T log (privacy):
    ✅ Log: method, path, status, duration, request ID
    ❌ Don't log: request body (passwords), query strings, auth headers
"""

import asyncio
import logging
import time

from starlette.types import ASGIApp, Receive, Scope, Send

from spike.middleware.context import context_from_scope
from spike.middleware.guard import StatusRecorder

logger = logging.getLogger("spike.access")


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class AccessLogMiddleware:
    """
    Logs exactly one `http_access` event per request, after downstream returns.

    Outcomes:
        Normal return              → status recorded from the response start
        Exception, nothing sent    → status 500, exception re-raised (Recovery answers)
        Cancelled by Timeout stage → status 504, cancellation re-raised
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        recorder = StatusRecorder(send)
        try:
            await self.app(scope, receive, recorder)
        except asyncio.CancelledError:
            self._log(scope, recorder.status if recorder.started else 504, start_time)
            raise
        except Exception:
            self._log(scope, recorder.status if recorder.started else 500, start_time)
            raise
        self._log(scope, recorder.status, start_time)

    def _log(self, scope: Scope, status: int, start_time: float) -> None:
        duration_ms = (time.perf_counter() - start_time) * 1000
        method = scope.get("method", "")
        path = scope.get("path", "")
        rid = context_from_scope(scope).request_id
        logger.log(
            level_for_status(status),
            "http_access",
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
            },
        )
