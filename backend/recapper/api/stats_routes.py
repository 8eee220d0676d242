"""
HTTP API routes for usage statistics and ratings.
"""

import logging

from fastapi import APIRouter, HTTPException

from recapper.config import get_settings
from recapper.models.schemas import AppStats, RatingRequest
from recapper.services.errors import SideEffectError
from recapper.services.stats_client import StatsClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=AppStats)
async def get_stats() -> AppStats:
    """
    Get recap counter and rating statistics.

    Raises:
        502: Statistics service unavailable
    """
    async with StatsClient.from_settings(get_settings()) as client:
        try:
            return await client.get_stats()
        except SideEffectError as e:
            logger.error(f"Error fetching stats: {e}")
            raise HTTPException(status_code=502, detail=e.message)


@router.post("/rating", response_model=AppStats)
async def submit_rating(request: RatingRequest) -> AppStats:
    """
    Submit a 1..5 rating and return updated statistics.

    Raises:
        502: Statistics service unavailable
    """
    async with StatsClient.from_settings(get_settings()) as client:
        try:
            await client.add_rating(request.rating)
            return await client.get_stats()
        except SideEffectError as e:
            logger.error(f"Failed to submit rating: {e}")
            raise HTTPException(status_code=502, detail=e.message)
