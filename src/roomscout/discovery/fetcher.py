"""Tier listing queries against the marketplace room endpoints.

Premium ("VIP") and standard listings come from separate endpoints and are
paginated independently. The backend answers either with a bare array or
with a paginated envelope; normalize_listing_response() is the one place
that tells the two apart.

Architecture:
  session picks location via resolve() → fetch_tier() builds params →
  MarketplaceClient.get() → normalize_listing_response() → ListingPage
"""

import asyncio
import logging
import time
from typing import Any

import mlflow
from mlflow.entities import SpanType
from pydantic import ValidationError

from roomscout.api.client import MarketplaceClient
from roomscout.api.schemas import ListRoom
from roomscout.config import settings
from roomscout.core.types import GeoPoint, ListingPage, RoomFilters, Tier

logger = logging.getLogger(__name__)

TIER_PATHS: dict[Tier, str] = {
    Tier.PREMIUM: "/rooms/allroom-vip",
    Tier.STANDARD: "/rooms/allroom-normal",
}
MAP_PATH = "/rooms/map"
FILTER_PATH = "/rooms/filter"


def _parse_rooms(items: list) -> tuple[ListRoom, ...]:
    rooms = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            rooms.append(ListRoom.model_validate(item))
        except ValidationError as e:
            logger.warning("Skipping malformed listing %r: %s", item.get("id"), e.error_count())
    return tuple(rooms)


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def normalize_listing_response(body: Any, page: int, page_size: int) -> ListingPage:
    """Normalize a bare array or a ``{data, totalPages, ...}`` envelope into a ListingPage.

    A bare array is one full page (``total_pages = 1``). An envelope with a
    missing or zero ``totalPages`` also counts as one page. Anything else is
    logged and becomes an empty page.
    """
    if isinstance(body, list):
        items = _parse_rooms(body)
        return ListingPage(
            items=items, page_number=page, page_size=page_size,
            total_pages=1, total_records=len(items),
        )

    if isinstance(body, dict) and isinstance(body.get("data"), list):
        items = _parse_rooms(body["data"])
        return ListingPage(
            items=items,
            page_number=page,
            page_size=page_size,
            total_pages=_positive_int(body.get("totalPages"), 1),
            total_records=_positive_int(body.get("totalRecords"), len(items)),
        )

    logger.warning("Unexpected listing response structure: %s", type(body).__name__)
    return ListingPage(page_number=page, page_size=page_size)


class DiscoveryFetcher:
    """Issues the premium and standard listing queries."""

    def __init__(self, client: MarketplaceClient, page_size: int | None = None):
        self._client = client
        self.page_size = page_size or settings.listing_page_size

    @mlflow.trace(name="fetch_tier", span_type=SpanType.RETRIEVER)
    async def fetch_tier(
        self,
        tier: Tier,
        page: int = 0,
        page_size: int | None = None,
        user_id: str | None = None,
        point: GeoPoint | None = None,
        filters: RoomFilters | None = None,
    ) -> ListingPage:
        """Fetch one page of one tier.

        Without ``point`` the backend ranks by its default (recency, or the
        user's profile when ``user_id`` is given) instead of proximity.

        Raises:
            httpx.HTTPError: transport or HTTP failure, for the caller to report.
        """
        size = page_size or self.page_size
        params: dict[str, Any] = {"page": page, "size": size}
        if user_id:
            params["userId"] = user_id
        if point is not None:
            params["latitude"] = point.lat
            params["longitude"] = point.lng
        if filters is not None:
            params.update(filters.to_params())

        t0 = time.monotonic()
        body = await self._client.get(TIER_PATHS[tier], params=params)
        listing = normalize_listing_response(body, page, size)
        logger.info(
            "%s page %d: %d rooms (%d pages, %s ranking)",
            tier.value, page, len(listing.items), listing.total_pages,
            "proximity" if point is not None else "default",
            extra={
                "tier": tier.value,
                "page": page,
                "duration_ms": round((time.monotonic() - t0) * 1000),
            },
        )
        return listing

    async def fetch_both(
        self,
        page_size: int | None = None,
        user_id: str | None = None,
        point: GeoPoint | None = None,
        filters: RoomFilters | None = None,
    ) -> tuple[ListingPage, ListingPage]:
        """Fetch page 0 of both tiers concurrently. Returns (premium, standard)."""
        premium, standard = await asyncio.gather(
            self.fetch_tier(Tier.PREMIUM, 0, page_size, user_id, point, filters),
            self.fetch_tier(Tier.STANDARD, 0, page_size, user_id, point, filters),
        )
        logger.info("Found %d rooms across both tiers",
                    premium.total_records + standard.total_records)
        return premium, standard

    @mlflow.trace(name="filter_rooms", span_type=SpanType.RETRIEVER)
    async def filter_rooms(
        self,
        filters: RoomFilters,
        page: int = 0,
        page_size: int | None = None,
    ) -> ListingPage:
        """One page of rooms matching ``filters`` across both tiers, without location ranking."""
        size = page_size or self.page_size
        params: dict[str, Any] = {"page": page, "size": size, **filters.to_params()}
        body = await self._client.get(FILTER_PATH, params=params)
        listing = normalize_listing_response(body, page, size)
        logger.info("Filter page %d: %d rooms (%d total)", page, len(listing.items), listing.total_records,
                    extra={"page": page})
        return listing

    @mlflow.trace(name="fetch_rooms_in_map", span_type=SpanType.RETRIEVER)
    async def fetch_rooms_in_map(self, point: GeoPoint, radius_km: float) -> tuple[ListRoom, ...]:
        """Rooms within ``radius_km`` of ``point``, for a map view."""
        if radius_km <= 0:
            raise ValueError(f"radius must be positive, got {radius_km}")
        body = await self._client.get(
            MAP_PATH, params={"latitude": point.lat, "longitude": point.lng, "radius": radius_km},
        )
        return normalize_listing_response(body, 0, 0).items
