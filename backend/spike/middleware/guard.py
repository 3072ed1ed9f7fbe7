"""
Spike Server — Response Writer Decorators
==========================================

What:  Two wrappers around the ASGI `send` callable:
       - StatusRecorder: remembers the first status code sent (AccessLog)
       - ResponseGuard:  first-write-wins ownership of the response (Timeout, Recovery)
How:   Both inspect `http.response.start` messages and forward everything else.
Who:   Created per request by the stages that need them; never shared.

Only one response may be written per request. A second `http.response.start`
through the same guard is a bug and raises immediately; once a guard is
closed (another writer claimed the response), later messages are dropped.
"""

import logging

from starlette.types import Message, Send

logger = logging.getLogger(__name__)


class StatusRecorder:
    """
    Records the status of the first response start message.

    Defaults to 200 for a handler that never set one explicitly.
    """

    def __init__(self, send: Send, default_status: int = 200):
        self._send = send
        self.status = default_status
        self.started = False

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start" and not self.started:
            self.started = True
            self.status = message["status"]
        await self._send(message)


class ResponseGuard:
    """
    First-write-wins wrapper around `send`.

    Attributes:
        started:  A response start message went through this guard
        finished: The final body chunk went through this guard
        closed:   Another writer owns the response; messages are dropped
    """

    def __init__(self, send: Send):
        self._send = send
        self.started = False
        self.finished = False
        self.closed = False

    async def __call__(self, message: Message) -> None:
        if self.closed:
            logger.debug("Dropping %s: response already written by another stage", message["type"])
            return
        if message["type"] == "http.response.start":
            if self.started:
                raise RuntimeError("response already started; only one response may be written per request")
            self.started = True
        elif message["type"] == "http.response.body" and not message.get("more_body", False):
            self.finished = True
        await self._send(message)

    def close(self) -> None:
        """Stop forwarding; the caller takes over the underlying `send`."""
        self.closed = True
