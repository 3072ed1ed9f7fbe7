"""
Spike Server — Request Context Propagation
===========================================

What:  The typed, immutable per-request context (correlation id + deadline) and
       the helpers that attach it to, and read it from, a request.
How:   A frozen dataclass carried two ways:
       1. In the ASGI scope state, for route handlers (`get_request_context(request)`)
       2. In a ContextVar, for loggers and code that has no request object
       Stages never mutate a context; they derive a new one (`with_deadline`) and
       pass a copied scope to the next stage, so upstream stages keep seeing theirs.
Who:   Written by the RequestID and Timeout stages; read by Recovery, AccessLog,
       exception handlers and route handlers.
"""

import time
from contextvars import ContextVar
from dataclasses import dataclass, replace
from typing import Optional

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import Scope

from spike import resp
from spike.exceptions import RequestTimeoutError

_STATE_KEY = "request_context"


class Deadline:
    """
    Expiry signal for one request.

    Becomes expired when its duration elapses or when the Timeout stage cancels it.
    Handlers poll it cooperatively; nothing is preempted.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._expires_at = time.monotonic() + timeout
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def expired(self) -> bool:
        return self._cancelled or time.monotonic() >= self._expires_at

    def remaining(self) -> float:
        """Seconds left before expiry (0 once expired or cancelled)."""
        if self._cancelled:
            return 0.0
        return max(0.0, self._expires_at - time.monotonic())

    def __repr__(self) -> str:
        return f"<Deadline(timeout={self.timeout}, remaining={self.remaining():.3f})>"


@dataclass(frozen=True)
class RequestContext:
    """
    Per-request context. Owned by one in-flight request; never shared or mutated.

    Attributes:
        request_id: Correlation id, non-empty once the RequestID stage has run
        deadline:   Set by the Timeout stage; None when no timeout applies
    """

    request_id: str = ""
    deadline: Optional[Deadline] = None

    def with_deadline(self, deadline: Deadline) -> "RequestContext":
        return replace(self, deadline=deadline)


# Coroutine-local copy of the current context (tasks inherit it at creation)
request_context_var: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)

_EMPTY = RequestContext()


def current_request_context() -> RequestContext:
    return request_context_var.get() or _EMPTY


def current_request_id() -> str:
    return current_request_context().request_id


def context_from_scope(scope: Scope) -> RequestContext:
    state = scope.get("state") or {}
    ctx = state.get(_STATE_KEY)
    return ctx if isinstance(ctx, RequestContext) else _EMPTY


def scope_with_context(scope: Scope, ctx: RequestContext) -> Scope:
    """Return a shallow copy of `scope` whose state carries `ctx`."""
    state = dict(scope.get("state") or {})
    state[_STATE_KEY] = ctx
    return {**scope, "state": state}


def get_request_context(request: Request) -> RequestContext:
    """Context for a route handler; empty if the pipeline is not installed."""
    return context_from_scope(request.scope)


# ── Deadline helpers ──────────────────────────────────────────────────────


def check_deadline(deadline: Optional[Deadline]) -> None:
    """
    Raise RequestTimeoutError when the deadline has expired or been cancelled.

    Service code calls this before expensive work so it stops early instead of
    finishing a response nobody will receive.
    """
    if deadline is not None and deadline.expired():
        raise RequestTimeoutError()


def handle_timeout(ctx: RequestContext) -> Optional[JSONResponse]:
    """
    Unified timeout envelope for a context whose deadline is over, else None.

    A non-None return means "already handled": the handler returns it as-is.

        if (timeout := handle_timeout(ctx)) is not None:
            return timeout
    """
    if ctx.deadline is None or not ctx.deadline.expired():
        return None
    return resp.error(
        resp.http_status_from_code(resp.Code.TIMEOUT),
        resp.Code.TIMEOUT,
        RequestTimeoutError.default_message,
        ctx.request_id,
    )
