"""
Spike Server — Timeout Middleware
==================================

What:  Bounds request processing time and answers late requests with the
       unified timeout envelope (HTTP 504, code 10002, "request timeout").
How:   Runs everything below it in its own task and races that task against
       the configured duration:
       - Handler finishes first      → its response passes through unchanged
       - Timer fires, nothing written → this stage writes the timeout envelope,
                                        closes the handler's writer, cancels the task
       - Timer fires, response started → the handler keeps ownership and finishes
Who:   Third stage; bounds CORS, access logging and routing below it.

Cancellation is cooperative: the derived RequestContext carries a Deadline,
handlers can poll it (`handle_timeout`, `check_deadline`), and task
cancellation is delivered at the handler's next await. A late handler write
is dropped by the ResponseGuard, so only one response is ever sent.
"""

import asyncio
import logging

from starlette.types import ASGIApp, Receive, Scope, Send

from spike import resp
from spike.exceptions import RequestTimeoutError
from spike.middleware.context import (
    Deadline,
    context_from_scope,
    request_context_var,
    scope_with_context,
)
from spike.middleware.guard import ResponseGuard

logger = logging.getLogger(__name__)


class TimeoutMiddleware:
    """
    Enforces a maximum processing duration per request.

    Args:
        app:     Next stage
        timeout: Maximum duration in seconds (must be > 0)
    """

    def __init__(self, app: ASGIApp, timeout: float):
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")
        self.app = app
        self.timeout = timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        deadline = Deadline(self.timeout)
        ctx = context_from_scope(scope).with_deadline(deadline)
        guard = ResponseGuard(send)

        # The task copies the current contextvars at creation
        token = request_context_var.set(ctx)
        try:
            task = asyncio.ensure_future(self.app(scope_with_context(scope, ctx), receive, guard))
        finally:
            request_context_var.reset(token)

        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            task.result()
            return

        deadline.cancel()
        if guard.started:
            logger.warning(
                "Deadline of %.3fs exceeded after response started; letting handler finish",
                self.timeout,
                extra={"request_id": ctx.request_id},
            )
            await task
            return

        guard.close()
        logger.warning(
            "Request timed out after %.3fs",
            self.timeout,
            extra={"request_id": ctx.request_id, "path": scope.get("path", "")},
        )
        response = resp.error(
            resp.http_status_from_code(resp.Code.TIMEOUT),
            resp.Code.TIMEOUT,
            RequestTimeoutError.default_message,
            ctx.request_id,
        )
        await response(scope, receive, send)

        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Handler failed after timeout response was written",
                exc_info=task.exception(),
                extra={"request_id": ctx.request_id},
            )
