"""Client for the identity backend's auth REST API.

Only the handful of calls the session bridge needs are wrapped:

- admin user creation, lookup and password update (service-role key)
- password sign-in and OTP verification (anon key)
- magic-link generation for wallet logins (service-role key)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx

from focus_auth.core.settings import settings

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_UNPROCESSABLE_ENTITY = 422

USERS_PAGE_SIZE = 200


class BackendAuthError(RuntimeError):
    """Raised when the auth backend is unreachable or rejects a call.

    ``status_code`` is None for transport failures.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class UserAlreadyExistsError(BackendAuthError):
    """Raised by ``create_user`` when the email is already registered."""


class InvalidCredentialsError(BackendAuthError):
    """Raised by ``sign_in_with_password`` when the password does not match."""


@dataclass(frozen=True)
class BackendAuthConfig:
    """Immutable configuration for auth backend calls."""

    base_url: str
    anon_key: str
    service_role_key: str
    timeout_seconds: float = 5.0


@dataclass(frozen=True)
class BackendUser:
    id: str
    email: str | None


@dataclass(frozen=True)
class SessionTokens:
    """Access/refresh token pair returned by the backend."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str
    user_id: str | None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> SessionTokens:
        if not isinstance(payload, Mapping) or not payload.get("access_token"):
            raise BackendAuthError(
                "session response carries no access_token", status_code=HTTP_OK
            )
        user = payload.get("user")
        if not isinstance(user, Mapping):
            user = {}
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token", ""),
            expires_in=int(payload.get("expires_in") or 0),
            token_type=payload.get("token_type") or "bearer",
            user_id=user.get("id"),
        )


@dataclass(frozen=True)
class MagicLink:
    """One-time credentials minted for a passwordless login."""

    email: str
    token: str | None
    email_otp: str | None
    user_id: str | None

    @property
    def verification_type(self) -> str | None:
        if self.token:
            return "magiclink"
        if self.email_otp:
            return "email"
        return None


def load_backend_auth_config() -> BackendAuthConfig:
    """Build configuration object from global settings."""

    return BackendAuthConfig(
        base_url=settings.backend_url,
        anon_key=settings.backend_anon_key,
        service_role_key=settings.backend_service_role_key,
        timeout_seconds=float(settings.backend_timeout_seconds),
    )


def _error_details(response: httpx.Response) -> tuple[str, str | None]:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}", None
    if not isinstance(body, Mapping):
        return str(body), None
    message = (
        body.get("msg")
        or body.get("error_description")
        or body.get("message")
        or body.get("error")
        or f"HTTP {response.status_code}"
    )
    return str(message), body.get("error_code") or body.get("error")


def _link_token(action_link: str | None) -> str | None:
    if not action_link:
        return None
    values = parse_qs(urlparse(action_link).query).get("token")
    return values[0] if values else None


class BackendAuthClient:
    """HTTP client wrapper for the auth backend."""

    def __init__(
        self,
        config: BackendAuthConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_backend_auth_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url.rstrip("/"),
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    def _headers(self, *, admin: bool) -> dict[str, str]:
        key = self.config.service_role_key if admin else self.config.anon_key
        return {"apikey": key, "Authorization": f"Bearer {key}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        admin: bool,
        json_data: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> httpx.Response:
        client = await self._ensure_client()
        try:
            return await client.request(
                method,
                path,
                json=json_data,
                params=params,
                headers=self._headers(admin=admin),
            )
        except httpx.HTTPError as exc:
            logger.warning("Auth backend %s %s failed: %s", method, path, exc)
            raise BackendAuthError(f"Auth backend request failed: {exc}") from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.status_code == HTTP_OK:
            return
        message, error_code = _error_details(response)
        raise BackendAuthError(
            f"{action} failed: {message}",
            status_code=response.status_code,
            error_code=error_code,
        )

    async def create_user(
        self,
        email: str,
        *,
        password: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> BackendUser:
        """Create a confirmed account.

        Raises:
            UserAlreadyExistsError: If the email is already registered.
            BackendAuthError: On any other failure.
        """
        payload: dict[str, Any] = {"email": email, "email_confirm": True}
        if password is not None:
            payload["password"] = password
        if metadata:
            payload["user_metadata"] = dict(metadata)

        response = await self._request("POST", "/auth/v1/admin/users", admin=True, json_data=payload)
        if response.status_code != HTTP_OK:
            message, error_code = _error_details(response)
            if (
                response.status_code == HTTP_UNPROCESSABLE_ENTITY
                or error_code == "email_exists"
                or ("already" in message.lower() and "registered" in message.lower())
            ):
                raise UserAlreadyExistsError(
                    message, status_code=response.status_code, error_code=error_code
                )
            raise BackendAuthError(
                f"create user failed: {message}",
                status_code=response.status_code,
                error_code=error_code,
            )
        body = response.json()
        return BackendUser(id=body["id"], email=body.get("email"))

    async def sign_in_with_password(self, email: str, password: str) -> SessionTokens:
        """Exchange email and password for a session.

        Raises:
            InvalidCredentialsError: If the backend rejects the password.
            BackendAuthError: On any other failure.
        """
        response = await self._request(
            "POST",
            "/auth/v1/token",
            admin=False,
            params={"grant_type": "password"},
            json_data={"email": email, "password": password},
        )
        if response.status_code == HTTP_BAD_REQUEST:
            message, error_code = _error_details(response)
            if error_code in {"invalid_credentials", "invalid_grant"} or (
                "invalid login credentials" in message.lower()
            ):
                raise InvalidCredentialsError(
                    message, status_code=response.status_code, error_code=error_code
                )
        self._raise_for_status(response, "password sign-in")
        return SessionTokens.from_payload(response.json())

    async def find_user_by_email(self, email: str) -> BackendUser | None:
        """Page through the admin user list looking for ``email``."""
        page = 1
        wanted = email.lower()
        while True:
            response = await self._request(
                "GET",
                "/auth/v1/admin/users",
                admin=True,
                params={"page": page, "per_page": USERS_PAGE_SIZE},
            )
            self._raise_for_status(response, "list users")
            users = response.json().get("users") or []
            for user in users:
                if (user.get("email") or "").lower() == wanted:
                    return BackendUser(id=user["id"], email=user.get("email"))
            if len(users) < USERS_PAGE_SIZE:
                return None
            page += 1

    async def update_user_password(self, user_id: str, password: str) -> None:
        response = await self._request(
            "PUT",
            f"/auth/v1/admin/users/{user_id}",
            admin=True,
            json_data={"password": password},
        )
        self._raise_for_status(response, "password update")

    async def generate_magic_link(
        self,
        email: str,
        *,
        metadata: Mapping[str, Any] | None = None,
    ) -> MagicLink:
        """Mint a magic-link token and email OTP without sending any email."""
        payload: dict[str, Any] = {"type": "magiclink", "email": email}
        if metadata:
            payload["data"] = dict(metadata)
        response = await self._request(
            "POST", "/auth/v1/admin/generate_link", admin=True, json_data=payload
        )
        self._raise_for_status(response, "generate link")

        body = response.json()
        properties = body.get("properties") or body
        return MagicLink(
            email=email,
            token=_link_token(properties.get("action_link")) or properties.get("hashed_token"),
            email_otp=properties.get("email_otp"),
            user_id=(body.get("user") or body).get("id"),
        )

    async def verify_otp(
        self,
        *,
        verification_type: str,
        email: str | None = None,
        token: str | None = None,
        token_hash: str | None = None,
    ) -> SessionTokens:
        """Redeem a one-time token for a session."""
        payload: dict[str, Any] = {"type": verification_type}
        if token_hash is not None:
            payload["token_hash"] = token_hash
        else:
            payload["email"] = email
            payload["token"] = token
        response = await self._request("POST", "/auth/v1/verify", admin=False, json_data=payload)
        self._raise_for_status(response, "verify otp")
        return SessionTokens.from_payload(response.json())

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
