"""Client for the upstream sports-data API.

Responses are passed through unmodified; this module only fetches them and
turns transport or status failures into ``UpstreamError``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional
from urllib.parse import quote, unquote

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class UpstreamUnavailable(UpstreamError):
    """The upstream could not be reached or returned unreadable data."""

    def __init__(self, message: str):
        super().__init__(500, message)


class StreamedClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.STREAMED_API_BASE).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.UPSTREAM_TIMEOUT_SECONDS
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        )

    async def _get(self, path: str) -> httpx.Response:
        if not path.startswith("/"):
            path = "/" + path
        try:
            async with self._client() as client:
                resp = await client.get(path)
        except httpx.HTTPError as exc:
            logger.error(f"Upstream request {path} failed: {exc}")
            raise UpstreamUnavailable(str(exc)) from exc

        if resp.status_code >= 400:
            logger.error(f"Upstream API error for {path}: {resp.status_code} {resp.reason_phrase}")
            raise UpstreamError(resp.status_code, resp.reason_phrase or "Upstream error")
        return resp

    async def get_json(self, path: str) -> Any:
        resp = await self._get(path)
        try:
            return resp.json()
        except ValueError as exc:
            logger.error(f"Upstream returned invalid JSON for {path}")
            raise UpstreamUnavailable("Invalid JSON from upstream") from exc

    async def get_bytes(self, path: str) -> bytes:
        resp = await self._get(path)
        return resp.content


def _id_variants(value: str) -> set:
    return {value, quote(value, safe=""), unquote(value)}


def find_match(matches: Iterable[Any], match_id: str) -> Optional[dict]:
    """Find a match by id, tolerating URL encoding and letter case."""
    search = str(match_id)
    search_variants = _id_variants(search)
    search_lower = search.lower()

    for match in matches:
        if not isinstance(match, dict) or not match.get("id"):
            continue
        candidate = str(match["id"])
        if candidate == search:
            return match
        if search_variants & _id_variants(candidate):
            return match
        if candidate.lower() == search_lower:
            return match
    return None


streamed_client = StreamedClient()


def get_streamed_client() -> StreamedClient:
    return streamed_client
