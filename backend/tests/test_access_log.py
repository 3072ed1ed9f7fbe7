"""
Spike Server — Access Log Middleware Tests
===========================================

What we test:
    ✅ Exactly one `http_access` event per request
    ✅ The recorded status is the one the handler wrote (418 stays 418)
    ✅ Structured fields: method, path, status, duration_ms, request_id
    ✅ Level follows status class
    ✅ Faults are logged as 500 before Recovery answers
"""

import logging

import pytest
from fastapi import Response
from httpx import ASGITransport, AsyncClient

from spike.middleware.access_log import level_for_status
from spike.middleware.request_id import HEADER_REQUEST_ID


def access_records(caplog):
    return [r for r in caplog.records if r.name == "spike.access" and r.getMessage() == "http_access"]


def build_app(make_pipeline_app):
    app = make_pipeline_app()

    @app.get("/teapot")
    async def teapot():
        return Response(status_code=418)

    @app.get("/ok")
    async def ok():
        return {"ok": True}

    @app.get("/boom")
    async def boom():
        raise ValueError("bad index")

    return app


class TestAccessLogMiddleware:

    @pytest.mark.asyncio
    async def test_records_handler_status(self, make_pipeline_app, caplog):
        caplog.set_level(logging.INFO, logger="spike.access")
        app = build_app(make_pipeline_app)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/teapot", headers={HEADER_REQUEST_ID: "tea-1"})

        assert response.status_code == 418
        records = access_records(caplog)
        assert len(records) == 1
        record = records[0]
        assert record.status == 418
        assert record.method == "GET"
        assert record.path == "/teapot"
        assert record.request_id == "tea-1"
        assert record.duration_ms >= 0
        assert record.levelno == logging.WARNING

    @pytest.mark.asyncio
    async def test_success_logged_at_info(self, make_pipeline_app, caplog):
        caplog.set_level(logging.INFO, logger="spike.access")
        app = build_app(make_pipeline_app)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            await client.get("/ok")

        records = access_records(caplog)
        assert [r.status for r in records] == [200]
        assert records[0].levelno == logging.INFO

    @pytest.mark.asyncio
    async def test_fault_logged_as_500(self, make_pipeline_app, caplog):
        caplog.set_level(logging.INFO, logger="spike.access")
        app = build_app(make_pipeline_app)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/boom")

        assert response.status_code == 500
        records = access_records(caplog)
        assert len(records) == 1
        assert records[0].status == 500
        assert records[0].levelno == logging.ERROR

    @pytest.mark.asyncio
    async def test_preflight_not_logged(self, make_pipeline_app, caplog):
        caplog.set_level(logging.INFO, logger="spike.access")
        app = build_app(make_pipeline_app)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.options("/ok")

        # CORS answers preflights above the access log
        assert response.status_code == 204
        assert access_records(caplog) == []


@pytest.mark.parametrize(
    "status,level",
    [(200, logging.INFO), (302, logging.INFO), (404, logging.WARNING), (499, logging.WARNING), (500, logging.ERROR), (504, logging.ERROR)],
)
def test_level_for_status(status, level):
    assert level_for_status(status) == level
