"""REST client for the workforce backend's ``/auth`` endpoints.

Pattern: Error-Normalizing Gateway
-----------------------------------
Everything that can go wrong on the wire (HTTP status codes, dropped
connections, timeouts, garbage bodies) leaves this module as one of five
exception types.  Callers branch on the *kind* of failure, never on
``httpx`` internals:

  - ``ValidationError``          bad input shape; re-prompt the user.
  - ``InvalidCredentialsError``  wrong e-mail or password; do not retry.
  - ``UnauthorizedError``        the bearer token was rejected; log out.
  - ``NetworkError``             transport failure; the caller may retry.
  - ``ServerError``              everything else; show a generic message.

The client never retries on its own.  Retry is a policy decision that belongs
to whoever drives the UI.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import Any

import httpx

from workforce_session.auth.session import User

logger = logging.getLogger(__name__)

AUTH_ENDPOINTS = {
    "login": "/auth/login",
    "logout": "/auth/logout",
    "profile": "/auth/profile",
    "refresh": "/auth/refresh",
    "reset_password": "/auth/reset-password",
    "change_password": "/auth/change-password",
}

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_SPECIAL_RE = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")


class AuthClientError(Exception):
    """Base class for normalized auth API failures."""

    kind = "ServerError"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationError(AuthClientError):
    kind = "ValidationError"


class InvalidCredentialsError(AuthClientError):
    kind = "InvalidCredentials"


class UnauthorizedError(AuthClientError):
    kind = "Unauthorized"


class NetworkError(AuthClientError):
    kind = "NetworkError"


class ServerError(AuthClientError):
    kind = "ServerError"


@dataclasses.dataclass(frozen=True)
class LoginResult:
    user: User
    token: str
    message: str | None = None


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))


def validate_password(password: str) -> list[str]:
    """Return the strength rules *password* breaks (empty list if none)."""
    problems: list[str] = []
    if len(password) < 8:
        problems.append("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        problems.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        problems.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        problems.append("Password must contain at least one number")
    if not _SPECIAL_RE.search(password):
        problems.append("Password must contain at least one special character")
    return problems


class AuthClient:
    """Thin async wrapper around the ``/auth`` endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> AuthClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # -- endpoints -----------------------------------------------------------

    async def login(self, email: str, password: str) -> LoginResult:
        """Exchange credentials for a user record and a bearer token.

        Raises ``ValidationError`` before any request when a field is empty or
        the e-mail is malformed.
        """
        if not email or not password:
            raise ValidationError("Email and password are required")
        if not is_valid_email(email):
            raise ValidationError(f"Invalid email address: {email}")

        logger.info("Login attempt for %s", email)
        data = await self._request(
            "POST",
            AUTH_ENDPOINTS["login"],
            json={"email": email, "password": password},
            on_401=InvalidCredentialsError,
        )

        token = data.get("token")
        if not token or not isinstance(token, str):
            raise ServerError("Login response did not include a token")
        user = self._parse_user(data.get("user"))
        logger.info("Login succeeded for %s (user=%s, role=%s)", email, user.id, user.role.value)
        return LoginResult(user=user, token=token, message=data.get("message"))

    async def logout(self, token: str | None) -> None:
        await self._request(
            "POST",
            AUTH_ENDPOINTS["logout"],
            token=token,
            on_401=UnauthorizedError,
        )

    async def get_profile(self, token: str) -> User:
        data = await self._request(
            "GET",
            AUTH_ENDPOINTS["profile"],
            token=token,
            on_401=UnauthorizedError,
        )
        record = data.get("user", data)
        return self._parse_user(record)

    async def refresh_token(self, token: str) -> str:
        data = await self._request(
            "POST",
            AUTH_ENDPOINTS["refresh"],
            token=token,
            on_401=UnauthorizedError,
        )
        new_token = data.get("token")
        if not new_token or not isinstance(new_token, str):
            raise ServerError("Refresh response did not include a token")
        return new_token

    async def request_password_reset(self, email: str) -> dict[str, Any]:
        if not is_valid_email(email):
            raise ValidationError(f"Invalid email address: {email}")
        return await self._request(
            "POST",
            AUTH_ENDPOINTS["reset_password"],
            json={"email": email},
            on_401=UnauthorizedError,
        )

    async def change_password(
        self, token: str, current_password: str, new_password: str
    ) -> dict[str, Any]:
        if not current_password:
            raise ValidationError("Current password is required")
        problems = validate_password(new_password)
        if problems:
            raise ValidationError("; ".join(problems))
        return await self._request(
            "POST",
            AUTH_ENDPOINTS["change_password"],
            token=token,
            json={"currentPassword": current_password, "newPassword": new_password},
            on_401=UnauthorizedError,
        )

    # -- private helpers -----------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: dict[str, Any] | None = None,
        on_401: type[AuthClientError],
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            response = await self._http.request(method, path, json=json, headers=headers)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"Network connection failed: {exc}") from exc

        if response.status_code == 401:
            raise on_401(self._error_message(response, "Unauthorized"), 401)
        if response.status_code == 400:
            raise ValidationError(self._error_message(response, "Invalid request"), 400)
        if not response.is_success:
            logger.warning("%s %s returned HTTP %s", method, path, response.status_code)
            raise ServerError(
                self._error_message(response, f"HTTP {response.status_code}"),
                response.status_code,
            )

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise ServerError(f"Unreadable response from {path}", response.status_code) from exc
        if not isinstance(data, dict):
            raise ServerError(f"Unexpected response shape from {path}", response.status_code)
        return data

    @staticmethod
    def _error_message(response: httpx.Response, default: str) -> str:
        try:
            body = response.json()
        except ValueError:
            return default
        if not isinstance(body, dict):
            return default
        for key in ("error", "message"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
        return default

    @staticmethod
    def _parse_user(record: Any) -> User:
        try:
            return User.from_dict(record)
        except ValueError as exc:
            raise ServerError(f"Malformed user record: {exc}") from exc
