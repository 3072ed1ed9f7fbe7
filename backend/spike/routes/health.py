"""
Spike Server — Health Check Route
==================================

What:  Liveness endpoint for load balancers and container probes.
How:   Answers with the success envelope and the running version. It does not
       touch the database, so it stays green while the process can serve.
Who:   Docker health checks, load balancers, smoke tests.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from spike import resp
from spike.middleware.context import get_request_context

router = APIRouter(tags=["Health"])


@router.get("/healthz", summary="Service liveness check")
async def healthz(request: Request) -> JSONResponse:
    ctx = get_request_context(request)
    version = request.app.state.settings.app_version
    return resp.ok({"status": "ok", "version": version}, request_id=ctx.request_id)
