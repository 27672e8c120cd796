"""Domain types for the roomscout discovery pipeline.

All shared dataclasses and enums live here to prevent circular imports
and establish a single source of truth for the domain model. Wire
models exchanged with the marketplace API live in roomscout.api.schemas.
"""

import math
from dataclasses import dataclass, field
from enum import Enum

from roomscout.api.schemas import ListRoom


# ---------------------------------------------------------------------------
# Geography
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate pair. Construction validates the ranges."""

    lat: float
    lng: float

    def __post_init__(self) -> None:
        for name, value, bound in (("lat", self.lat, 90.0), ("lng", self.lng, 180.0)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or abs(value) > bound:
                raise ValueError(f"{name} out of range: {value!r}")
        object.__setattr__(self, "lat", float(self.lat))
        object.__setattr__(self, "lng", float(self.lng))

    @classmethod
    def try_from(cls, lat, lng) -> "GeoPoint | None":
        """Build a point from loosely typed values, or None if they are unusable."""
        if lat is None or lng is None:
            return None
        try:
            return cls(float(lat), float(lng))
        except (TypeError, ValueError):
            return None


class LocationSource(str, Enum):
    """Which producer supplied a resolved location."""

    EXPLICIT_SEARCH = "explicit_search"
    SAVED_PREFERENCE = "saved_preference"
    DEVICE_GPS = "device_gps"


@dataclass(frozen=True)
class ResolvedLocation:
    """The single authoritative coordinate + address driving a discovery query."""

    point: GeoPoint
    formatted_address: str
    source: LocationSource


class GeoFailureReason(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"
    NETWORK_ERROR = "network_error"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class GeoFailure:
    """A definite geocoding failure returned (not raised) to the caller."""

    reason: GeoFailureReason
    detail: str = ""
    attempts: int = 0

    @property
    def user_message(self) -> str:
        if self.reason is GeoFailureReason.NOT_FOUND:
            return "No matching address found."
        if self.reason is GeoFailureReason.MISSING_CREDENTIAL:
            return "Address lookup is not configured."
        return "Address lookup is temporarily unavailable."


GeoResult = ResolvedLocation | GeoFailure


# ---------------------------------------------------------------------------
# Region hierarchy
# ---------------------------------------------------------------------------

class RegionLevel(str, Enum):
    PROVINCE = "province"
    DISTRICT = "district"
    WARD = "ward"


class LoadStatus(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    LOADED = "loaded"
    LOAD_ERROR = "load_error"


@dataclass(frozen=True)
class RegionNode:
    """A province, district or ward option."""

    id: str
    name: str
    parent_id: str | None = None


@dataclass(frozen=True)
class CascadeSelection:
    """The province/district/ward triple plus display labels."""

    province_id: str | None = None
    district_id: str | None = None
    ward_id: str | None = None
    province_label: str = ""
    district_label: str = ""
    ward_label: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.province_id or self.district_id or self.ward_id)


@dataclass(frozen=True)
class RoomFilters:
    """Structured listing filters appended to tier queries."""

    province_id: str | None = None
    district_id: str | None = None
    ward_id: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    min_area: float | None = None
    max_area: float | None = None
    convenient_ids: tuple[str, ...] = ()

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        for key, value in (
            ("provinceId", self.province_id),
            ("districtId", self.district_id),
            ("wardId", self.ward_id),
            ("minPrice", self.min_price),
            ("maxPrice", self.max_price),
            ("minArea", self.min_area),
            ("maxArea", self.max_area),
        ):
            if value is not None and value != "":
                params[key] = str(int(value)) if isinstance(value, float) and value.is_integer() else str(value)
        if self.convenient_ids:
            params["listConvenientIds"] = ",".join(self.convenient_ids)
        return params


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

class Tier(str, Enum):
    """Listing category, fetched and paginated independently."""

    PREMIUM = "VIP"
    STANDARD = "NORMAL"


@dataclass(frozen=True)
class ListingPage:
    """One page of one tier. Replaced, never mutated, by the next fetch."""

    items: tuple[ListRoom, ...] = ()
    page_number: int = 0
    page_size: int = 0
    total_pages: int = 1
    total_records: int = 0


@dataclass
class TierState:
    """Pagination state for one tier inside a discovery session."""

    tier: Tier
    page: int = 0
    listing: ListingPage = field(default_factory=ListingPage)
    generation: int = 0
    loading: bool = False
