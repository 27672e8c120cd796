"""Core domain types shared across all roomscout modules."""

from roomscout.core.types import (
    CascadeSelection,
    GeoFailure,
    GeoFailureReason,
    GeoPoint,
    ListingPage,
    LocationSource,
    RegionNode,
    ResolvedLocation,
    RoomFilters,
    Tier,
)

__all__ = [
    "CascadeSelection",
    "GeoFailure",
    "GeoFailureReason",
    "GeoPoint",
    "ListingPage",
    "LocationSource",
    "RegionNode",
    "ResolvedLocation",
    "RoomFilters",
    "Tier",
]
