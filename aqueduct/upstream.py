"""Notion API client.

Every request acquires a slot on the ``notion`` rate-limit channel before it
is sent, including retried attempts. Non-2xx responses become UpstreamError;
transient ones (429/5xx, transport failures) are retried with backoff first.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from aqueduct.config import require, settings
from aqueduct.errors import ConfigurationError, UpstreamError
from aqueduct.ratelimit import NOTION_CHANNEL, RateLimiter, get_rate_limiter
from aqueduct.retry import retry_upstream

logger = logging.getLogger(__name__)


class NotionClient:
    """Authenticated, rate-limited JSON calls against the Notion REST API."""

    def __init__(
        self,
        api_key: str,
        *,
        version: str = "2025-09-03",
        base_url: str = "https://api.notion.com/v1",
        limiter: RateLimiter | None = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        transport: httpx.BaseTransport | None = None,
    ):
        self._api_key = api_key
        self._version = version
        self._limiter = limiter
        self.max_retries = max_retries
        self._http = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def request(self, path: str, method: str = "GET", body: dict | None = None) -> Any:
        """Send one call and return the parsed JSON response."""
        if not self._api_key:
            raise ConfigurationError("Missing NOTION_API_KEY")
        send = retry_upstream(max_retries=self.max_retries)(self._send)
        return send(path, method, body)

    def _send(self, path: str, method: str, body: dict | None) -> Any:
        limiter = self._limiter or get_rate_limiter()
        limiter.acquire(NOTION_CHANNEL)

        try:
            response = self._http.request(
                method,
                path,
                json=body,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Notion-Version": self._version,
                    "Content-Type": "application/json",
                    "Cache-Control": "no-store",
                },
            )
        except httpx.TransportError as e:
            raise UpstreamError(0, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise UpstreamError(
                response.status_code,
                response.text,
                retry_after=response.headers.get("Retry-After"),
            )
        return response.json()

    def resolve_data_source_id(self, database_id: str) -> str:
        """Return the first data source id nested under a Notion database."""
        db = self.request(f"/databases/{database_id}", method="GET")
        sources = db.get("data_sources") if isinstance(db, dict) else None
        ds_id = sources[0].get("id") if sources and isinstance(sources[0], dict) else None
        if not ds_id:
            raise ConfigurationError("Database has no data_sources[0].id")
        return ds_id


_client: NotionClient | None = None


def get_notion_client() -> NotionClient:
    """Get or create the process-wide Notion client from settings."""
    global _client
    if _client is None:
        _client = NotionClient(
            require(settings.notion_api_key, "NOTION_API_KEY"),
            version=settings.notion_version,
            base_url=settings.notion_api_base_url,
            timeout=settings.aqueduct_upstream_timeout,
            max_retries=settings.aqueduct_upstream_max_retries,
        )
    return _client
