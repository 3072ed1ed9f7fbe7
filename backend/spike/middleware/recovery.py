"""
Spike Server — Recovery Middleware
===================================

What:  Catch-all boundary for unexpected faults raised anywhere downstream.
How:   Wraps the next stage in try/except Exception. A fault is logged once at
       ERROR with its stack trace and the request id, then answered with the
       generic internal-error envelope (HTTP 500, code 10000).
Who:   Second stage, directly inside RequestID, so the envelope carries the
       correlation id and no later stage's fault escapes unlogged.

Expected failures (bad input, missing user, duplicate email) never get here:
they are SpikeError subclasses handled next to the router. This boundary is
reserved for genuine bugs such as an attribute access on None.

Only exceptions are caught. asyncio.CancelledError is a BaseException and
passes through untouched, as does anything raised for non-HTTP scopes.
"""

import logging

from starlette.types import ASGIApp, Receive, Scope, Send

from spike import resp
from spike.middleware.context import context_from_scope
from spike.middleware.guard import ResponseGuard

logger = logging.getLogger("spike.recovery")

INTERNAL_ERROR_MESSAGE = "internal server error"


class RecoveryMiddleware:
    """
    Converts unhandled exceptions into a single 500 envelope.

    If downstream completes normally (including writing its own error
    response), this stage is fully transparent.

    If the fault happens after the response start was already sent, no
    envelope is possible; the fault is still logged and the request ends.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        guard = ResponseGuard(send)
        try:
            await self.app(scope, receive, guard)
        except Exception as exc:
            rid = context_from_scope(scope).request_id
            logger.error(
                "panic recovered: %r",
                exc,
                exc_info=True,
                extra={"panic": repr(exc), "request_id": rid},
            )
            if guard.started:
                logger.error(
                    "response already started; cannot write error envelope",
                    extra={"request_id": rid},
                )
                return

            guard.close()
            response = resp.error(500, resp.Code.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE, rid)
            await response(scope, receive, send)
