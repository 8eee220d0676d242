"""
Statistics counter client (Supabase REST).

Tracks how many recaps were created and collects user ratings.
Counting a recap is a side effect of a successful run: it must never
fail the run, so notify_recap_created() logs and swallows errors.
"""

import logging
from typing import Protocol, runtime_checkable

import httpx

from recapper.config import Settings
from recapper.models.schemas import AppStats
from recapper.services.errors import SideEffectError

logger = logging.getLogger(__name__)

INCREMENT_RPC = "increment_recaps_created"
RATING_RPC = "add_rating"
STATS_TABLE = "app_stats"


@runtime_checkable
class RecapCounter(Protocol):
    """Anything that can count a created recap."""

    async def increment_recaps_created(self) -> None:
        ...


class StatsClient:
    """
    Async client for the statistics RPC endpoints.

    An unconfigured client (no URL/key) skips the counter and reports
    empty statistics.

    Example:
        async with StatsClient.from_settings(settings) as stats:
            await stats.increment_recaps_created()
            current = await stats.get_stats()
    """

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize stats client.

        Args:
            base_url: Supabase project URL
            api_key: Supabase anon key
            timeout: Request timeout in seconds
            http_client: HTTP client to use (created and owned if None)
        """
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self.timeout = timeout
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> "StatsClient":
        """Create StatsClient from application settings."""
        return cls(
            base_url=settings.supabase_url,
            api_key=settings.supabase_anon_key,
            timeout=settings.stats_timeout,
            http_client=http_client,
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key or "",
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "StatsClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _rpc(self, name: str, params: dict | None = None) -> None:
        url = f"{self.base_url}/rest/v1/rpc/{name}"
        try:
            response = await self.http_client.post(
                url,
                json=params or {},
                headers=self._headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SideEffectError(
                f"RPC {name} failed: HTTP {e.response.status_code}", original_error=e
            ) from e
        except httpx.HTTPError as e:
            raise SideEffectError(f"RPC {name} failed: {e}", original_error=e) from e

    async def increment_recaps_created(self) -> None:
        """
        Increment the created-recaps counter.

        Raises:
            SideEffectError: If the RPC fails
        """
        if not self.configured:
            logger.debug("Stats service not configured, skipping recap counter")
            return
        await self._rpc(INCREMENT_RPC)
        logger.debug("Recap counter incremented")

    async def add_rating(self, rating: int) -> None:
        """
        Submit a 1..5 rating.

        Raises:
            ValueError: If rating is out of range
            SideEffectError: If the service is not configured or the RPC fails
        """
        if not 1 <= rating <= 5:
            raise ValueError(f"Rating must be between 1 and 5, got {rating}")
        if not self.configured:
            raise SideEffectError("Stats service not configured")
        await self._rpc(RATING_RPC, {"new_rating": rating})
        logger.info(f"Rating submitted: {rating}")

    async def get_stats(self) -> AppStats:
        """
        Fetch current statistics.

        Returns:
            AppStats (all zeros when not configured or empty)

        Raises:
            SideEffectError: If the request fails
        """
        if not self.configured:
            return AppStats()

        url = f"{self.base_url}/rest/v1/{STATS_TABLE}"
        try:
            response = await self.http_client.get(
                url,
                params={"select": "*", "limit": 1},
                headers=self._headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            rows = response.json()
        except httpx.HTTPError as e:
            raise SideEffectError(f"Fetching stats failed: {e}", original_error=e) from e
        except ValueError as e:
            raise SideEffectError("Stats response is not valid JSON", original_error=e) from e

        if not rows:
            return AppStats()
        return AppStats.model_validate(rows[0])


async def notify_recap_created(counter: RecapCounter | None) -> None:
    """Count a created recap; failures are logged, never raised."""
    if counter is None:
        return
    try:
        await counter.increment_recaps_created()
    except Exception as e:
        logger.error(f"Failed to increment recap count: {e}")
