"""
Spike Server — Auth & Profile API Tests
========================================

What:  End-to-end tests through the full app (pipeline + handlers + SQLite).

What we test:
    ✅ Register → login → profile happy path with envelope shape
    ✅ Field validation messages and the 400 envelope
    ✅ Duplicate registration → 409
    ✅ Login failures → 401 / 403
    ✅ Profile parameter handling → 400 / 404 (ASCII digits only)
    ✅ Malformed bodies are logged without their raw values
    ✅ Database failures → 500 "<op> failed"
    ✅ Health check and unknown routes
"""

import logging

import pytest
from unittest.mock import AsyncMock, patch

from spike.exceptions import DatabaseError
from spike.middleware.request_id import HEADER_REQUEST_ID

REGISTER = "/api/v1/auth/register"
LOGIN = "/api/v1/auth/login"
PROFILE = "/api/v1/users/profile"

ALICE = {"username": "alice", "email": "Alice@Example.com", "password": "secret123"}


async def register(client, **overrides):
    return await client.post(REGISTER, json={**ALICE, **overrides})


def assert_error(response, status, message, code=10001):
    body = response.json()
    assert response.status_code == status
    assert body["code"] == code
    assert body["message"] == message
    assert "data" not in body
    assert body["request_id"] == response.headers[HEADER_REQUEST_ID]


class TestRegister:

    @pytest.mark.asyncio
    async def test_register_success(self, test_client):
        response = await register(test_client)
        body = response.json()

        assert response.status_code == 200
        assert body["code"] == 0
        assert body["message"] == "OK"
        data = body["data"]
        assert set(data) == {"id", "username", "email", "role", "is_active", "created_at"}
        assert data["username"] == "alice"
        assert data["email"] == "alice@example.com"
        assert data["role"] == "user"
        assert data["is_active"] is True
        assert "password_hash" not in data

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"username": "al"}, "username must be between 3 and 32 characters"),
            ({"username": "a" * 33}, "username must be between 3 and 32 characters"),
            ({"password": "12345"}, "password must be between 6 and 72 characters"),
            ({"password": "x" * 73}, "password must be between 6 and 72 characters"),
            ({"email": ""}, "email is required"),
            ({"email": "alice-at-example"}, "invalid email format"),
        ],
    )
    async def test_validation_messages(self, test_client, overrides, message):
        response = await register(test_client, **overrides)

        assert_error(response, 400, message)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"content": b"{not json", "headers": {"Content-Type": "application/json"}},
            {"json": ["alice"]},
            {"json": {"username": 123, "email": "a@b.c", "password": "secret123"}},
        ],
    )
    async def test_invalid_body(self, test_client, kwargs):
        response = await test_client.post(REGISTER, **kwargs)

        assert_error(response, 400, "invalid request body")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"username": "alice", "email": "alice@example.com", "password": 98765432},
            98765432,
        ],
    )
    async def test_invalid_body_log_omits_raw_values(self, test_client, caplog, payload):
        caplog.set_level(logging.WARNING, logger="spike.main")

        response = await test_client.post(REGISTER, json=payload)

        assert_error(response, 400, "invalid request body")
        logged = [r for r in caplog.records if r.getMessage().startswith("invalid request body")]
        assert len(logged) == 1
        assert "98765432" not in logged[0].getMessage()
        assert "loc" in logged[0].getMessage()

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, test_client):
        await register(test_client)
        response = await register(test_client, email="other@example.com")

        assert_error(response, 409, "username or email already exists")

    @pytest.mark.asyncio
    async def test_duplicate_email_case_insensitive(self, test_client):
        await register(test_client)
        response = await register(test_client, username="alice2", email="ALICE@example.com")

        assert_error(response, 409, "username or email already exists")

    @pytest.mark.asyncio
    async def test_database_failure(self, test_client):
        with patch(
            "spike.services.user_service.UserService.register",
            new=AsyncMock(side_effect=DatabaseError(context={"operation": "create user"})),
        ):
            response = await register(test_client)

        assert_error(response, 500, "register failed", code=10000)


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_with_username_and_email(self, test_client):
        await register(test_client)

        by_name = await test_client.post(LOGIN, json={"username": "alice", "password": "secret123"})
        by_email = await test_client.post(LOGIN, json={"username": "alice@example.com", "password": "secret123"})

        for response in (by_name, by_email):
            body = response.json()
            assert response.status_code == 200
            assert body["code"] == 0
            assert body["data"]["user"]["username"] == "alice"
            assert "password_hash" not in body["data"]["user"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"username": "alice", "password": "wrong-password"},
            {"username": "ghost", "password": "secret123"},
        ],
    )
    async def test_bad_credentials(self, test_client, payload):
        await register(test_client)

        response = await test_client.post(LOGIN, json=payload)

        assert_error(response, 401, "invalid username or password")

    @pytest.mark.asyncio
    async def test_inactive_user(self, test_client, database):
        from spike.repositories.user_repository import UserRepository

        user_id = (await register(test_client)).json()["data"]["id"]
        async with database.session() as session:
            await UserRepository(session).delete(user_id)

        response = await test_client.post(LOGIN, json={"username": "alice", "password": "secret123"})

        assert_error(response, 403, "user is inactive")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,message",
        [
            ({"username": "", "password": "secret123"}, "username is required"),
            ({"username": "alice"}, "password is required"),
        ],
    )
    async def test_required_fields(self, test_client, payload, message):
        response = await test_client.post(LOGIN, json=payload)

        assert_error(response, 400, message)


class TestProfile:

    @pytest.mark.asyncio
    async def test_profile_success(self, test_client):
        user_id = (await register(test_client)).json()["data"]["id"]

        response = await test_client.get(PROFILE, params={"user_id": str(user_id)})
        body = response.json()

        assert response.status_code == 200
        assert body["data"]["id"] == user_id
        assert "updated_at" in body["data"]
        assert "password_hash" not in body["data"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params,status,message",
        [
            ({}, 400, "user_id is required"),
            ({"user_id": ""}, 400, "user_id is required"),
            ({"user_id": "abc"}, 400, "invalid user_id"),
            ({"user_id": "1.5"}, 400, "invalid user_id"),
            ({"user_id": "99999999999999999999"}, 400, "invalid user_id"),
            ({"user_id": "\u0661"}, 400, "invalid user_id"),
            ({"user_id": "\uff11"}, 400, "invalid user_id"),
            ({"user_id": "1\n"}, 400, "invalid user_id"),
            ({"user_id": " 1"}, 400, "invalid user_id"),
            ({"user_id": "424242"}, 404, "user not found"),
        ],
    )
    async def test_profile_errors(self, test_client, params, status, message):
        response = await test_client.get(PROFILE, params=params)

        assert_error(response, status, message)


class TestMisc:

    @pytest.mark.asyncio
    async def test_healthz(self, test_client):
        response = await test_client.get("/healthz", headers={HEADER_REQUEST_ID: "hc-1"})
        body = response.json()

        assert response.status_code == 200
        assert body["data"] == {"status": "ok", "version": "0.1.0"}
        assert body["request_id"] == "hc-1"

    @pytest.mark.asyncio
    async def test_unknown_route_gets_envelope(self, test_client):
        response = await test_client.get("/api/v1/nope")

        assert_error(response, 404, "not found")

    @pytest.mark.asyncio
    async def test_cors_headers_on_api_responses(self, test_client):
        response = await test_client.options(REGISTER)

        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "GET, POST, PUT, DELETE, OPTIONS"
