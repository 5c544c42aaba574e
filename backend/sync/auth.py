"""Sign-in against the remote auth endpoint and the resulting session identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from backend.config import settings
from backend.errors import SyncError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncSession:
    """The authenticated identity a sync engine is bound to."""

    user_id: str
    email: str
    access_token: str
    refresh_token: str | None = None


class AuthClient:
    """Email/password auth over the remote's ``/auth/v1`` HTTP API."""

    def __init__(
        self,
        base_url: str = settings.remote_url,
        anon_key: str = settings.remote_anon_key,
        timeout: float = settings.remote_timeout_seconds,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.base_url and self.anon_key)

    async def sign_up(self, email: str, password: str) -> SyncSession | None:
        """Create an account. Returns a session unless email confirmation is pending."""
        _require_credentials(email, password)
        data = await self._post("/signup", {"email": email, "password": password})
        if not data.get("access_token"):
            logger.info("Sign-up for %s awaits email confirmation", email)
            return None
        return _session_from(data)

    async def sign_in(self, email: str, password: str) -> SyncSession:
        _require_credentials(email, password)
        data = await self._post(
            "/token", {"email": email, "password": password}, params={"grant_type": "password"}
        )
        session = _session_from(data)
        logger.info("Signed in as %s", session.email)
        return session

    async def restore(self, access_token: str) -> SyncSession:
        """Rebuild a session from a stored access token."""
        data = await self._call("GET", "/user", token=access_token)
        if not data.get("id"):
            raise SyncError("Auth response has no user id")
        return SyncSession(user_id=data["id"], email=data.get("email", ""), access_token=access_token)

    async def sign_out(self, session: SyncSession) -> None:
        await self._call("POST", "/logout", token=session.access_token)
        logger.info("Signed out %s", session.email)

    async def _post(
        self, path: str, body: dict[str, Any], params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        return await self._call("POST", path, json=body, params=params)

    async def _call(
        self, method: str, path: str, token: str | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        headers = {"apikey": self.anon_key, "Authorization": f"Bearer {token or self.anon_key}"}
        try:
            async with httpx.AsyncClient(
                base_url=f"{self.base_url}/auth/v1",
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SyncError(_error_message(exc.response)) from exc
        except httpx.HTTPError as exc:
            raise SyncError(f"Auth request failed: {exc}") from exc
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise SyncError(f"Auth {path} returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise SyncError(f"Auth {path} returned an unexpected body")
        return data


def _require_credentials(email: str, password: str) -> None:
    if not email.strip() or not password:
        raise ValidationError("Email and password are required")


def _session_from(data: dict[str, Any]) -> SyncSession:
    user = data.get("user") or {}
    if not user.get("id") or not data.get("access_token"):
        raise SyncError("Auth response is missing the user id or access token")
    return SyncSession(
        user_id=user["id"],
        email=user.get("email", ""),
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Auth failed with {response.status_code}"
    return body.get("error_description") or body.get("msg") or body.get("message") or str(body)
