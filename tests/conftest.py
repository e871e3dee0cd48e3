# tests/conftest.py
from __future__ import annotations

import hashlib
import hmac
import json
import os
import time
from collections.abc import Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta
from itertools import count
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TELEGRAM_BOT_TOKEN"] = "123456:TEST-BOT-TOKEN"
os.environ["TELEGRAM_BOT_USERNAME"] = "FocusTestBot"
os.environ["TELEGRAM_WEBHOOK_SECRET"] = "webhook-secret"
os.environ["CREDENTIAL_SECRET"] = "credential-secret"
os.environ["BACKEND_URL"] = "http://backend.test"
os.environ["BACKEND_ANON_KEY"] = "anon-key"
os.environ["BACKEND_SERVICE_ROLE_KEY"] = "service-key"

from focus_auth.api.v1.dependencies import get_backend_auth, get_telegram_bot
from focus_auth.db.session import Base
from focus_auth.db.session import get_db as app_get_session
from focus_auth.main import app as fastapi_app
from focus_auth.services.backend_auth import BackendAuthClient, BackendAuthConfig
from focus_auth.services.telegram_bot import TelegramBotClient, TelegramBotConfig

TEST_DB_URL = "sqlite://"
TEST_BOT_TOKEN = os.environ["TELEGRAM_BOT_TOKEN"]
TEST_WEBHOOK_SECRET = os.environ["TELEGRAM_WEBHOOK_SECRET"]
TEST_BACKEND_URL = os.environ["BACKEND_URL"]


class FakeAuthBackend:
    """In-memory stand-in for the auth backend's REST API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.links: dict[str, str] = {}
        self.otps: dict[str, str] = {}
        self.requests: list[httpx.Request] = []
        self.fail_create_with: int | None = None
        self._ids = count(1)
        self._tokens = count(1)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add_user(self, email: str, password: str | None = None) -> dict[str, Any]:
        user = {"id": f"uid-{next(self._ids)}", "email": email, "password": password}
        self.users[email] = user
        return user

    def calls(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def _session(self, user: dict[str, Any]) -> httpx.Response:
        n = next(self._tokens)
        return httpx.Response(
            200,
            json={
                "access_token": f"access-{n}",
                "refresh_token": f"refresh-{n}",
                "expires_in": 3600,
                "token_type": "bearer",
                "user": {"id": user["id"], "email": user["email"]},
            },
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if request.method == "POST" and path == "/auth/v1/admin/users":
            if self.fail_create_with is not None:
                return httpx.Response(self.fail_create_with, json={"msg": "backend exploded"})
            if body["email"] in self.users:
                return httpx.Response(
                    422,
                    json={
                        "code": 422,
                        "error_code": "email_exists",
                        "msg": "A user with this email address has already been registered",
                    },
                )
            user = self.add_user(body["email"], body.get("password"))
            return httpx.Response(200, json={"id": user["id"], "email": user["email"]})

        if request.method == "POST" and path == "/auth/v1/token":
            assert request.url.params["grant_type"] == "password"
            user = self.users.get(body["email"])
            if user is None or user["password"] != body["password"]:
                return httpx.Response(
                    400,
                    json={"error": "invalid_grant", "error_description": "Invalid login credentials"},
                )
            return self._session(user)

        if request.method == "GET" and path == "/auth/v1/admin/users":
            page = int(request.url.params.get("page", 1))
            per_page = int(request.url.params.get("per_page", 50))
            users = list(self.users.values())[(page - 1) * per_page : page * per_page]
            return httpx.Response(
                200, json={"users": [{"id": u["id"], "email": u["email"]} for u in users]}
            )

        if request.method == "PUT" and path.startswith("/auth/v1/admin/users/"):
            user_id = path.rsplit("/", 1)[-1]
            for user in self.users.values():
                if user["id"] == user_id:
                    user["password"] = body["password"]
                    return httpx.Response(200, json={"id": user_id, "email": user["email"]})
            return httpx.Response(404, json={"msg": "User not found"})

        if request.method == "POST" and path == "/auth/v1/admin/generate_link":
            user = self.users.get(body["email"])
            if user is None:
                return httpx.Response(404, json={"msg": "User not found"})
            hashed = hashlib.sha256(f"{user['email']}:{next(self._tokens)}".encode()).hexdigest()
            otp = f"{next(self._tokens):06d}"
            self.links[hashed] = user["email"]
            self.otps[user["email"]] = otp
            return httpx.Response(
                200,
                json={
                    "id": user["id"],
                    "email": user["email"],
                    "action_link": f"{TEST_BACKEND_URL}/auth/v1/verify?token={hashed}&type=magiclink",
                    "email_otp": otp,
                    "hashed_token": hashed,
                    "verification_type": "magiclink",
                },
            )

        if request.method == "POST" and path == "/auth/v1/verify":
            if "token_hash" in body:
                email = self.links.pop(body["token_hash"], None)
            elif body.get("token") and self.otps.get(body.get("email")) == body["token"]:
                email = body["email"]
                self.otps.pop(email)
            else:
                email = None
            if email is None:
                return httpx.Response(403, json={"msg": "Token has expired or is invalid"})
            return self._session(self.users[email])

        return httpx.Response(404, json={"msg": f"unexpected {request.method} {path}"})


class FakeBotApi:
    """Records Bot API ``sendMessage`` calls."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/sendMessage")
        self.sent.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "result": {}})


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    # Services commit their own transitions, so every test gets a fresh in-memory database.
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fake_backend() -> FakeAuthBackend:
    return FakeAuthBackend()


@pytest.fixture()
def backend_client(fake_backend: FakeAuthBackend) -> BackendAuthClient:
    return BackendAuthClient(
        BackendAuthConfig(
            base_url=TEST_BACKEND_URL,
            anon_key="anon-key",
            service_role_key="service-key",
        ),
        transport=fake_backend.transport(),
    )


@pytest.fixture()
def bot_api() -> FakeBotApi:
    return FakeBotApi()


@pytest.fixture()
def bot_client(bot_api: FakeBotApi) -> TelegramBotClient:
    return TelegramBotClient(
        TelegramBotConfig(token=TEST_BOT_TOKEN),
        transport=httpx.MockTransport(bot_api.handle),
    )


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    backend_client: BackendAuthClient,
    bot_client: TelegramBotClient,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_backend_auth] = lambda: backend_client
    app.dependency_overrides[get_telegram_bot] = lambda: bot_client
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def sign_widget_fields(fields: dict[str, Any], bot_token: str = TEST_BOT_TOKEN) -> dict[str, Any]:
    """Return ``fields`` plus the ``hash`` the Telegram login widget would attach."""
    data_check = "\n".join(f"{k}={v}" for k, v in sorted(fields.items()))
    secret = hashlib.sha256(bot_token.encode()).digest()
    signed = dict(fields)
    signed["hash"] = hmac.new(secret, data_check.encode(), hashlib.sha256).hexdigest()
    return signed


@pytest.fixture()
def widget_payload() -> Callable[..., dict[str, Any]]:
    """Build a correctly signed widget payload; ``age`` shifts ``auth_date`` into the past."""

    def _build(telegram_id: int = 4242, *, age: int = 0, **extra: Any) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "id": telegram_id,
            "first_name": "Ada",
            "username": "ada_l",
            "auth_date": int(time.time()) - age,
        }
        fields.update(extra)
        return sign_widget_fields(fields)

    return _build


def build_siwe_message(
    address: str,
    nonce: str,
    *,
    domain: str = "focus.example",
    expiration_time: str | None = None,
) -> str:
    """Return an EIP-4361 message the way wallet connectors format it."""
    lines = [
        f"{domain} wants you to sign in with your Ethereum account:",
        address,
        "",
        "Sign in to Focus",
        "",
        f"URI: https://{domain}/login",
        "Version: 1",
        "Chain ID: 1",
        f"Nonce: {nonce}",
        "Issued At: 2026-10-19T09:00:00Z",
    ]
    if expiration_time is not None:
        lines.append(f"Expiration Time: {expiration_time}")
    return "\n".join(lines)


class MutableClock:
    """Callable clock for ledgers and verifiers; ``advance`` moves it forward."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 10, 19, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)
