"""
Spike Server — CORS Middleware Tests
=====================================

What we test:
    ✅ Every response (any method, any status) carries the allow headers
    ✅ Vary lists all three request characteristics in one header
    ✅ OPTIONS → 204 without reaching the handler
    ✅ Vary set by the handler is extended, not replaced
"""

import pytest
from fastapi import Response
from httpx import ASGITransport, AsyncClient

from spike.middleware.cors import CORSConfig, CORSMiddleware

CONFIG = CORSConfig(
    allowed_origins=("https://a.example", "https://b.example"),
    allowed_methods=("GET", "POST"),
    allowed_headers=("Authorization", "Content-Type"),
)

EXPECTED_VARY = "Origin, Access-Control-Request-Method, Access-Control-Request-Headers"


def assert_cors_headers(response):
    assert response.headers["access-control-allow-origin"] == "https://a.example, https://b.example"
    assert response.headers["access-control-allow-methods"] == "GET, POST"
    assert response.headers["access-control-allow-headers"] == "Authorization, Content-Type"


class TestCORSMiddleware:

    def setup_method(self):
        self.calls = 0

    def build(self, make_pipeline_app):
        app = make_pipeline_app(cors=CONFIG)

        @app.api_route("/thing", methods=["GET", "POST", "OPTIONS"])
        async def thing():
            self.calls += 1
            return {"ok": True}

        @app.get("/teapot")
        async def teapot():
            return Response(status_code=418)

        @app.get("/varied")
        async def varied():
            return Response(status_code=200, headers={"Vary": "Accept-Encoding"})

        return app

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,path,status", [("GET", "/thing", 200), ("POST", "/thing", 200), ("GET", "/teapot", 418), ("GET", "/missing", 404)])
    async def test_headers_on_every_response(self, make_pipeline_app, method, path, status):
        app = self.build(make_pipeline_app)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.request(method, path)

        assert response.status_code == status
        assert_cors_headers(response)
        assert response.headers.get_list("vary") == [EXPECTED_VARY]

    @pytest.mark.asyncio
    async def test_preflight_short_circuits(self, make_pipeline_app):
        app = self.build(make_pipeline_app)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.options(
                "/thing",
                headers={"Origin": "https://a.example", "Access-Control-Request-Method": "POST"},
            )

        assert response.status_code == 204
        assert response.content == b""
        assert_cors_headers(response)
        assert self.calls == 0

    @pytest.mark.asyncio
    async def test_existing_vary_is_extended(self, make_pipeline_app):
        app = self.build(make_pipeline_app)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/varied")

        assert response.headers["vary"] == f"Accept-Encoding, {EXPECTED_VARY}"

    def test_header_values_precomputed(self):
        async def app(scope, receive, send):
            pass

        middleware = CORSMiddleware(app, CONFIG)

        assert middleware.cors_headers["Access-Control-Allow-Methods"] == "GET, POST"
        assert middleware.vary == EXPECTED_VARY
