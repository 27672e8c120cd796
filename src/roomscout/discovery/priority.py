"""Location precedence: which coordinate pair drives a discovery query.

Order: an explicit location (typed search or device fix) beats the saved
preference, which beats nothing. "Nothing" is not an error: it tells the
fetcher to fall back to the backend's default, non-geographic ranking.
"""

from roomscout.api.schemas import UserPreference
from roomscout.core.types import GeoPoint, LocationSource, ResolvedLocation

SAVED_LOCATION_LABEL = "Saved Location"


def resolve(
    explicit: ResolvedLocation | None,
    saved: UserPreference | None,
) -> ResolvedLocation | None:
    """Pick the authoritative location. Pure and deterministic."""
    if explicit is not None:
        return explicit

    if saved is not None and saved.has_coordinates:
        point = GeoPoint.try_from(saved.latitude, saved.longitude)
        if point is not None:
            return ResolvedLocation(
                point=point,
                formatted_address=saved.search_address or SAVED_LOCATION_LABEL,
                source=LocationSource.SAVED_PREFERENCE,
            )

    return None
