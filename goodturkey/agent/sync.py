"""Fetch the rule projection from the goodturkey API."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from goodturkey.agent.cache import RuleCache
from goodturkey.clock import Clock
from goodturkey.errors import SyncAuthError, SyncError, ValidationError
from goodturkey.models.projection import CachedRule

logger = logging.getLogger(__name__)


@dataclass
class SyncConfig:
    """Configuration for the sync client."""
    api_base: str
    token: Optional[str] = None
    interval_minutes: int = 15
    timeout_seconds: float = 10.0


class SyncClient:
    """Async client for the /sync endpoint."""

    def __init__(self, config: SyncConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "SyncClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    @property
    def sync_url(self) -> str:
        return self.config.api_base.rstrip("/") + "/sync"

    async def fetch_projection(self) -> dict[str, Any]:
        """GET the projection.

        Raises:
            SyncAuthError: No token, or the server answered 401
            SyncError: Network failure, non-200 answer, or non-JSON body
        """
        if not self.config.token:
            raise SyncAuthError("Not logged in: no sync token configured")

        client = await self._get_client()
        headers = {"Authorization": f"Bearer {self.config.token}"}

        try:
            resp = await client.get(self.sync_url, headers=headers)
        except httpx.TimeoutException as e:
            raise SyncError(f"Sync timed out: {self.sync_url}") from e
        except httpx.HTTPError as e:
            raise SyncError(f"Sync request failed: {e}") from e

        if resp.status_code == 401:
            raise SyncAuthError("Sync token rejected (401)")
        if resp.status_code != 200:
            raise SyncError(f"Sync failed: {resp.status_code} - {resp.text[:200]}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise SyncError("Sync response is not JSON") from e
        if not isinstance(payload, dict):
            raise SyncError("Sync response is not a JSON object")
        return payload

    async def sync_into(self, cache: RuleCache, clock: Clock) -> list[CachedRule]:
        """Fetch and replace the cache. On failure the cache is left untouched."""
        payload = await self.fetch_projection()
        try:
            return cache.replace_rules(payload, clock.now())
        except ValidationError as e:
            raise SyncError(f"Sync response rejected: {e}") from e


async def run_periodic_sync(
    client: SyncClient,
    cache: RuleCache,
    clock: Clock,
    on_sync: Optional[Callable[[list[CachedRule]], None]] = None,
) -> None:
    """Sync now and then every interval_minutes until cancelled.

    Failures are logged and retried on the next tick; an auth failure stops
    the loop since retrying with the same token cannot succeed.
    """
    interval_seconds = client.config.interval_minutes * 60
    while True:
        try:
            rules = await client.sync_into(cache, clock)
            if on_sync:
                on_sync(rules)
        except SyncAuthError:
            logger.error("Sync token rejected, stopping periodic sync")
            raise
        except SyncError as e:
            logger.warning(f"Sync error: {e}")
            if cache.is_stale(clock.now()):
                logger.warning("Rule cache is stale; enforcing last known rules")
        await asyncio.sleep(interval_seconds)
