"""
Spike Server — Unified Response Envelope
=========================================

What:  The single JSON shape every endpoint returns, plus the helpers that build it.
How:   `write_json()` is the one primitive; `ok()` and `error()` are thin wrappers.
       Each returns a Starlette JSONResponse, which is itself an ASGI app, so the
       middleware stages can send an envelope with `await response(scope, receive, send)`.
Who:   Route handlers, exception handlers, and the Recovery/Timeout stages.

Wire format:
    {
        "code": 0,                     # business status, 0 = success
        "message": "OK",
        "data": {...},                 # success only; key absent on error
        "request_id": "5f0c...",       # omitted when empty
        "trace_id": "...",             # omitted when empty
        "timestamp": 1717171717        # unix seconds at serialization
    }

Business codes and their default HTTP status:
    0      OK              → 200
    10000  internal error  → 500
    10001  invalid param   → 400
    10002  timeout         → 504
"""

import time
from enum import IntEnum
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse


class Code(IntEnum):
    """Business status codes. 0 means success; values are stable on the wire."""

    OK = 0
    INTERNAL_ERROR = 10000
    INVALID_PARAM = 10001
    TIMEOUT = 10002


_STATUS_BY_CODE = {
    Code.OK: 200,
    Code.INVALID_PARAM: 400,
    Code.TIMEOUT: 504,
}


def http_status_from_code(code: int) -> int:
    """Default HTTP status for callers that only have a business code."""
    return _STATUS_BY_CODE.get(code, 500)


class Envelope(BaseModel):
    """
    What:  ResponseEnvelope — the wire contract for every JSON response.

    Invariant:
        code != 0 implies `data` is absent from the serialized body.
        `request_id` and `trace_id` are omitted rather than sent empty.
    """

    code: int = Field(description="Business status code (0 = success)")
    message: str = Field(description="Human-readable status message")
    data: Optional[Any] = Field(default=None, description="Payload (success only)")
    request_id: str = Field(default="", description="Correlation ID")
    trace_id: str = Field(default="", description="Secondary correlation ID")
    timestamp: int = Field(default_factory=lambda: int(time.time()))

    @property
    def is_success(self) -> bool:
        return self.code == Code.OK

    def to_wire(self) -> Dict[str, Any]:
        """Serialize, dropping keys the contract says must be absent."""
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.is_success:
            body["data"] = jsonable_encoder(self.data)
        if self.request_id:
            body["request_id"] = self.request_id
        if self.trace_id:
            body["trace_id"] = self.trace_id
        body["timestamp"] = self.timestamp
        return body


def write_json(
    status: int,
    code: int,
    message: str,
    data: Any = None,
    request_id: str = "",
    trace_id: str = "",
) -> JSONResponse:
    """
    Build the JSON response for an envelope.

    Args:
        status:     HTTP status line
        code:       Business code (see `Code`)
        message:    Human-readable message
        data:       Payload; only serialized when code is 0
        request_id: Correlation id, omitted from the body if empty
        trace_id:   Secondary correlation id, omitted if empty
    """
    envelope = Envelope(
        code=int(code),
        message=message,
        data=data,
        request_id=request_id or "",
        trace_id=trace_id or "",
    )
    return JSONResponse(status_code=status, content=envelope.to_wire())


def ok(data: Any = None, request_id: str = "", trace_id: str = "") -> JSONResponse:
    """Success envelope: HTTP 200, code 0, message "OK"."""
    return write_json(200, Code.OK, "OK", data, request_id, trace_id)


def error(
    status: int,
    code: int,
    message: str,
    request_id: str = "",
    trace_id: str = "",
) -> JSONResponse:
    """Failure envelope: the caller picks status/code/message; payload is always absent."""
    return write_json(status, code, message, None, request_id, trace_id)
