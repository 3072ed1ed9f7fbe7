"""
Spike Server — Request ID Middleware
=====================================

What:  Resolves one correlation id per request and echoes it on the response.
How:   Reads X-Request-ID; generates a UUID4 when the header is absent or blank.
       The id goes into a new RequestContext (scope state + ContextVar) before the
       next stage runs, and onto the response start message as X-Request-ID.
Who:   Outermost stage of the pipeline, so every later stage (including the
       Recovery and Timeout envelopes) can tag its output with the id.

Why accept client-provided IDs:
    The frontend or an upstream gateway can generate IDs before the request and
    send them in the header, so one id spans UI event → API call → log entry.
    A non-blank inbound value is used verbatim, never regenerated.
"""

import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from spike.middleware.context import (
    RequestContext,
    request_context_var,
    scope_with_context,
)

HEADER_REQUEST_ID = "X-Request-ID"


def resolve_request_id(inbound: str | None) -> str:
    """Inbound id if it has any non-whitespace content, else a fresh UUID4."""
    if inbound is None or not inbound.strip():
        return str(uuid.uuid4())
    return inbound


class RequestIDMiddleware:
    """
    Middleware that assigns a correlation ID to each request.

    Behavior:
        1. Use the client's X-Request-ID if present and non-blank
        2. Otherwise generate a new UUID4 (122 random bits)
        3. Attach it to a fresh RequestContext for downstream stages
        4. Set it on the response headers before any body is written
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        rid = resolve_request_id(Headers(scope=scope).get(HEADER_REQUEST_ID))
        ctx = RequestContext(request_id=rid)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                headers = MutableHeaders(scope=message)
                headers[HEADER_REQUEST_ID] = rid
            await send(message)

        token = request_context_var.set(ctx)
        try:
            await self.app(scope_with_context(scope, ctx), receive, send_with_request_id)
        finally:
            request_context_var.reset(token)
