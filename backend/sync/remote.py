"""Remote store client.

The remote replica is a PostgREST-style HTTP API (one table per entity,
rows filtered by ``user_id``). Only two calls are needed: fetch every row for
the signed-in user, and upsert a batch of rows keyed by id. Both are
idempotent, so transient transport failures are retried before surfacing
as ``SyncError``.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.config import settings
from backend.errors import SyncError

logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    """What the sync engine needs from the remote replica."""

    async def fetch_rows(self, table: str, user_id: str) -> list[dict[str, Any]]: ...

    async def upsert_rows(self, table: str, rows: list[dict[str, Any]]) -> None: ...

    async def close(self) -> None: ...


class PostgrestRemote:
    """httpx client for the remote REST tables."""

    def __init__(
        self,
        base_url: str = settings.remote_url,
        anon_key: str = settings.remote_anon_key,
        access_token: str | None = None,
        timeout: float = settings.remote_timeout_seconds,
        max_retries: int = settings.remote_max_retries,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.access_token = access_token
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def is_configured(self) -> bool:
        return bool(self.base_url and self.anon_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/rest/v1",
                headers={
                    "apikey": self.anon_key,
                    "Authorization": f"Bearer {self.access_token or self.anon_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._get_client()
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(httpx.TransportError),
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
                reraise=True,
            ):
                with attempt:
                    response = await client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SyncError(
                f"{method} {path} failed with {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SyncError(f"{method} {path} failed: {exc}") from exc
        return response

    async def fetch_rows(self, table: str, user_id: str) -> list[dict[str, Any]]:
        response = await self._request(
            "GET", f"/{table}", params={"select": "*", "user_id": f"eq.{user_id}"}
        )
        try:
            rows = response.json()
        except ValueError as exc:
            raise SyncError(f"GET /{table} returned a non-JSON body") from exc
        if not isinstance(rows, list):
            raise SyncError(f"GET /{table} returned {type(rows).__name__}, expected a list of rows")
        logger.debug("Fetched %d %s rows", len(rows), table)
        return rows

    async def upsert_rows(self, table: str, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        await self._request(
            "POST",
            f"/{table}",
            params={"on_conflict": "id"},
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            json=rows,
        )
        logger.debug("Upserted %d %s rows", len(rows), table)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
