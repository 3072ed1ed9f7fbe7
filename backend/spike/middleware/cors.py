"""
Spike Server — CORS Middleware
===============================

What:  Stamps the CORS allow-list headers on every response and answers
       preflight (OPTIONS) requests without reaching the router.
How:   The allow-lists arrive as an immutable CORSConfig and are joined into
       header values once, in the constructor. Each response start message gets:
           Access-Control-Allow-Origin:  <origins joined by ", ">
           Access-Control-Allow-Methods: <methods joined by ", ">
           Access-Control-Allow-Headers: <headers joined by ", ">
           Vary: Origin, Access-Control-Request-Method, Access-Control-Request-Headers
Who:   Fourth stage, ahead of the router so preflights never hit business logic.

Vary:
    All three request characteristics are written as ONE combined value and
    appended to any Vary already set downstream. Writing them as three
    separate "set" operations would leave only the last token.
"""

from dataclasses import dataclass
from typing import Tuple

from starlette.datastructures import MutableHeaders
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

VARY_TOKENS = ("Origin", "Access-Control-Request-Method", "Access-Control-Request-Headers")


@dataclass(frozen=True)
class CORSConfig:
    """Ordered allow-lists; built once at startup and shared read-only."""

    allowed_origins: Tuple[str, ...] = ()
    allowed_methods: Tuple[str, ...] = ()
    allowed_headers: Tuple[str, ...] = ()


class CORSMiddleware:
    """
    Applies a fixed CORS policy.

    Every response (any method, any status) carries the allow headers.
    OPTIONS requests get 204 No Content and downstream is never invoked.
    """

    def __init__(self, app: ASGIApp, config: CORSConfig):
        self.app = app
        self.config = config
        self.cors_headers = {
            "Access-Control-Allow-Origin": ", ".join(config.allowed_origins),
            "Access-Control-Allow-Methods": ", ".join(config.allowed_methods),
            "Access-Control-Allow-Headers": ", ".join(config.allowed_headers),
        }
        self.vary = ", ".join(VARY_TOKENS)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                self.apply(MutableHeaders(scope=message))
            await send(message)

        if scope["method"] == "OPTIONS":
            await Response(status_code=204)(scope, receive, send_with_cors)
            return

        await self.app(scope, receive, send_with_cors)

    def apply(self, headers: MutableHeaders) -> None:
        for name, value in self.cors_headers.items():
            headers[name] = value
        headers.add_vary_header(self.vary)
