"""Discovery session: the state container behind the home/search screen.

Owns everything that several asynchronous producers would otherwise race to
write: the explicit location, the saved preference and its loading gate,
the display area, the cascade selection, and the two tier paginations.
Callers drive it through the operations below and read state back; they
never assign the location directly.

Session flow:
  start() → load provinces, preference, email setting → apply preference
  (display area, cascade restore) unless the user already searched → open
  the gate → refresh both tiers.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum

import httpx

from roomscout.api.client import MarketplaceClient
from roomscout.api.schemas import PreferenceUpdate, UserPreference
from roomscout.core.types import (
    GeoFailure,
    GeoPoint,
    ListingPage,
    LocationSource,
    ResolvedLocation,
    RoomFilters,
    Tier,
    TierState,
)
from roomscout.discovery.fetcher import DiscoveryFetcher
from roomscout.discovery.priority import resolve
from roomscout.geo.resolver import GeoResolver, build_address_string, coordinate_label
from roomscout.observability.logging import new_correlation_id
from roomscout.preferences.sync import PreferenceSync
from roomscout.regions.cascade import RegionCascade

logger = logging.getLogger(__name__)

PLACEHOLDER_AREA = "Searching all areas"

DeviceLocator = Callable[[], Awaitable[GeoPoint]]


class LocationUnavailableError(RuntimeError):
    """The device could not provide a fix (permission denied, services off, timeout)."""


class PreferenceState(str, Enum):
    PENDING = "pending"
    LOADING = "loading"
    LOADED = "loaded"
    UNAVAILABLE = "unavailable"  # load failed: unknown, not empty


class DisplaySource(str, Enum):
    PLACEHOLDER = "placeholder"
    DEFAULT = "default"
    PREFERENCE = "preference"
    LIVE = "live"


@dataclass(frozen=True)
class LocationSaveResult:
    """Outcome of "save my current location"."""

    location: ResolvedLocation
    preference: UserPreference
    geocode_failure: GeoFailure | None = None


class DiscoverySession:
    """Per-screen discovery state for one (possibly anonymous) user."""

    def __init__(
        self,
        client: MarketplaceClient,
        user_id: str | None = None,
        *,
        geo: GeoResolver | None = None,
        preferences: PreferenceSync | None = None,
        fetcher: DiscoveryFetcher | None = None,
        cascade: RegionCascade | None = None,
        locator: DeviceLocator | None = None,
    ):
        self.user_id = user_id
        self.geo = geo or GeoResolver()
        self.preferences = preferences or PreferenceSync(client)
        self.fetcher = fetcher or DiscoveryFetcher(client)
        self.cascade = cascade or RegionCascade(client)
        self._locator = locator

        self.preference_state = PreferenceState.PENDING
        self.saved_preference: UserPreference | None = None
        self.email_notifications = False
        self.display_area = PLACEHOLDER_AREA
        self.display_source = DisplaySource.PLACEHOLDER
        self.tiers: dict[Tier, TierState] = {tier: TierState(tier=tier) for tier in Tier}
        self.listing_filters = RoomFilters()
        self.correlation_id = ""

        self._explicit: ResolvedLocation | None = None
        self._pending_default: str | None = None
        self._location_epoch = 0
        self._preferences_ready = asyncio.Event()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def current_location(self) -> ResolvedLocation | None:
        return resolve(self._explicit, self.saved_preference)

    @property
    def preferences_loaded(self) -> bool:
        return self.preference_state in (PreferenceState.LOADED, PreferenceState.UNAVAILABLE)

    def listing(self, tier: Tier) -> ListingPage:
        return self.tiers[tier].listing

    def page(self, tier: Tier) -> int:
        return self.tiers[tier].page

    async def wait_for_preferences(self) -> None:
        await self._preferences_ready.wait()

    # ------------------------------------------------------------------
    # Internal writers
    # ------------------------------------------------------------------

    def _set_display(self, text: str, source: DisplaySource) -> None:
        self.display_area = text
        self.display_source = source

    def _set_explicit(self, location: ResolvedLocation) -> None:
        self._explicit = location
        self._location_epoch += 1
        self._set_display(location.formatted_address, DisplaySource.LIVE)
        logger.info("Location set from %s", location.source.value,
                    extra={"user_id": self.user_id, "source": location.source.value})

    def _open_gate(self, state: PreferenceState) -> None:
        self.preference_state = state
        self._preferences_ready.set()
        if self.display_source is DisplaySource.PLACEHOLDER and self._pending_default:
            self._set_display(self._pending_default, DisplaySource.DEFAULT)

    def _preference_update(self, location: ResolvedLocation) -> PreferenceUpdate:
        fields = {
            "search_address": location.formatted_address,
            "latitude": location.point.lat,
            "longitude": location.point.lng,
        }
        sel = self.cascade.selection
        if sel.province_id:
            fields["province_id"] = sel.province_id
        if sel.district_id:
            fields["district_id"] = sel.district_id
        if sel.ward_id:
            fields["ward_id"] = sel.ward_id
        return PreferenceUpdate(**fields)

    def _filters(self) -> RoomFilters | None:
        """Cascade region plus price/area/amenity filters, or None when neither is set."""
        region = self.cascade.filters()
        filters = replace(
            self.listing_filters,
            province_id=region.province_id or None,
            district_id=region.district_id or None,
            ward_id=region.ward_id or None,
        )
        return None if filters == RoomFilters() else filters

    # ------------------------------------------------------------------
    # Session start and preference hydration
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load reference data and the user's preference, then fetch both tiers."""
        self.correlation_id = new_correlation_id()
        logger.info("Discovery session started", extra={"user_id": self.user_id})

        if self.user_id:
            self.preference_state = PreferenceState.LOADING
            epoch = self._location_epoch
            _, pref, _ = await asyncio.gather(
                self.cascade.load_provinces(),
                self.preferences.load(self.user_id),
                self.load_email_notifications(),
            )
            await self._apply_preference(pref, epoch)
        else:
            await self.cascade.load_provinces()
            self._open_gate(PreferenceState.LOADED)

        await self.refresh()

    async def _apply_preference(self, pref: UserPreference | None, epoch: int) -> None:
        if pref is None:
            logger.warning("Preferences unavailable; continuing without them",
                           extra={"user_id": self.user_id})
            self._open_gate(PreferenceState.UNAVAILABLE)
            return

        if self._location_epoch != epoch:
            # The user searched while the load was in flight; their choice stands.
            logger.info("Preference arrived after a live location change; keeping live value",
                        extra={"user_id": self.user_id})
            if self.saved_preference is None:
                self.saved_preference = pref
            self._open_gate(PreferenceState.LOADED)
            return

        self.saved_preference = pref
        if pref.search_address:
            self._set_display(pref.search_address, DisplaySource.PREFERENCE)
        self._open_gate(PreferenceState.LOADED)

        if pref.has_ranges and self.listing_filters == RoomFilters():
            self.listing_filters = RoomFilters(
                min_price=pref.min_price, max_price=pref.max_price,
                min_area=pref.min_area, max_area=pref.max_area,
            )
        if pref.has_region and self.cascade.selection.is_empty:
            await self.cascade.restore(pref.province_id, pref.district_id, pref.ward_id)

    def offer_default_area(self, text: str) -> None:
        """Offer a caller-supplied default display value.

        Held back while the preference is loading, and never shown over a
        saved or searched address.
        """
        if not text:
            return
        self._pending_default = text
        if self.preferences_loaded and self.display_source in (DisplaySource.PLACEHOLDER, DisplaySource.DEFAULT):
            self._set_display(text, DisplaySource.DEFAULT)

    async def load_email_notifications(self) -> bool:
        if not self.user_id:
            return False
        try:
            self.email_notifications = await self.preferences.read_email_notification(self.user_id)
        except httpx.HTTPError as e:
            logger.error("Error loading email notifications: %s", e, extra={"user_id": self.user_id})
            self.email_notifications = False
        return self.email_notifications

    async def set_email_notifications(self, enabled: bool) -> bool:
        """Write the email-notification toggle; on failure re-read the server value and re-raise."""
        if not self.user_id:
            raise ValueError("Managing email notifications requires a signed-in user")
        try:
            self.email_notifications = await self.preferences.write_email_notification(self.user_id, enabled)
        except httpx.HTTPError:
            await self.load_email_notifications()
            raise
        return self.email_notifications

    # ------------------------------------------------------------------
    # Location producers
    # ------------------------------------------------------------------

    async def search_by_address(self, text: str) -> ResolvedLocation | GeoFailure:
        """Geocode the typed text plus chosen region labels and search near it.

        The displayed area is the built query itself, not the provider's
        formatted address. Saving the preference is best-effort.

        Raises:
            ValueError: nothing to search for.
        """
        sel = self.cascade.selection
        address = build_address_string(text, sel.ward_label, sel.district_label, sel.province_label)
        if not address:
            raise ValueError("Enter an address or choose a region to search")

        result = await self.geo.geocode(address)
        if isinstance(result, GeoFailure):
            logger.warning("Address search failed (%s): %s", result.reason.value, address[:60],
                           extra={"user_id": self.user_id})
            return result

        location = ResolvedLocation(
            point=result.point, formatted_address=address, source=LocationSource.EXPLICIT_SEARCH,
        )
        self._set_explicit(location)

        if self.user_id:
            try:
                self.saved_preference = await self.preferences.save(
                    self.user_id, self._preference_update(location), base=self.saved_preference,
                )
            except httpx.HTTPError as e:
                logger.warning("Could not save search preferences: %s", e, extra={"user_id": self.user_id})

        await self.refresh()
        return location

    async def save_current_location(self) -> LocationSaveResult:
        """Take a device fix, name it, save it as the preference, and search near it.

        Falls back to a coordinate label when reverse geocoding fails.

        Raises:
            ValueError: no signed-in user.
            LocationUnavailableError: the device gave no fix.
            httpx.HTTPError: the preference could not be saved.
        """
        if not self.user_id:
            raise ValueError("Saving a location requires a signed-in user")
        if self._locator is None:
            raise LocationUnavailableError("no device locator configured")

        point = await self._locator()
        result = await self.geo.reverse_geocode(point)
        failure = result if isinstance(result, GeoFailure) else None
        if failure is not None:
            logger.warning("Reverse geocode failed (%s); saving coordinates", failure.reason.value,
                           extra={"user_id": self.user_id})
            address = coordinate_label(point)
        else:
            address = result.formatted_address

        location = ResolvedLocation(point=point, formatted_address=address, source=LocationSource.DEVICE_GPS)
        self._set_explicit(location)
        self.saved_preference = await self.preferences.save(
            self.user_id, self._preference_update(location), base=self.saved_preference,
        )

        await self.refresh()
        return LocationSaveResult(location=location, preference=self.saved_preference, geocode_failure=failure)

    async def clear_location(self) -> None:
        """Drop the explicit location and fall back to the saved preference, if any."""
        self._explicit = None
        self._location_epoch += 1
        pref = self.saved_preference
        if pref is not None and pref.search_address:
            self._set_display(pref.search_address, DisplaySource.PREFERENCE)
        elif self._pending_default:
            self._set_display(self._pending_default, DisplaySource.DEFAULT)
        else:
            self._set_display(PLACEHOLDER_AREA, DisplaySource.PLACEHOLDER)
        await self.refresh()

    # ------------------------------------------------------------------
    # Listing filters
    # ------------------------------------------------------------------

    async def set_listing_filters(
        self,
        *,
        min_price: float | None = None,
        max_price: float | None = None,
        min_area: float | None = None,
        max_area: float | None = None,
        convenient_ids: tuple[str, ...] = (),
    ) -> RoomFilters:
        """Replace the price, area and amenity filters and refetch both tiers.

        Passing no arguments clears them. For a signed-in user the price and
        area ranges are saved with the preference (best-effort); amenities
        are not part of the saved preference.

        Raises:
            ValueError: a negative bound, or a minimum above its maximum.
        """
        for label, low, high in (("price", min_price, max_price), ("area", min_area, max_area)):
            if (low is not None and low < 0) or (high is not None and high < 0):
                raise ValueError(f"{label} bounds must not be negative")
            if low is not None and high is not None and low > high:
                raise ValueError(f"minimum {label} {low} is above maximum {high}")

        self.listing_filters = RoomFilters(
            min_price=min_price, max_price=max_price, min_area=min_area, max_area=max_area,
            convenient_ids=tuple(str(i) for i in convenient_ids),
        )
        logger.info("Listing filters changed: %s", self.listing_filters.to_params() or "none",
                    extra={"user_id": self.user_id})

        if self.user_id:
            update = PreferenceUpdate(min_price=min_price, max_price=max_price, min_area=min_area, max_area=max_area)
            try:
                self.saved_preference = await self.preferences.save(
                    self.user_id, update, base=self.saved_preference,
                )
            except httpx.HTTPError as e:
                logger.warning("Could not save listing filters: %s", e, extra={"user_id": self.user_id})

        await self.refresh()
        return self.listing_filters

    async def filter_rooms(self, page: int = 0) -> ListingPage:
        """Rooms matching the current region and listing filters across both tiers.

        Unranked by location. Tier state is left alone.
        """
        return await self.fetcher.filter_rooms(self._filters() or RoomFilters(), max(page, 0))

    # ------------------------------------------------------------------
    # Tier pagination
    # ------------------------------------------------------------------

    async def _fetch_tier(self, tier: Tier, page: int) -> ListingPage:
        # The page is committed together with its listing, so a failed or
        # superseded fetch leaves the tier where it was.
        state = self.tiers[tier]
        state.generation += 1
        generation = state.generation
        state.loading = True

        location = self.current_location
        try:
            listing = await self.fetcher.fetch_tier(
                tier,
                page,
                user_id=self.user_id,
                point=location.point if location else None,
                filters=self._filters(),
            )
        finally:
            if state.generation == generation:
                state.loading = False

        if state.generation != generation:
            logger.debug("Discarding stale %s page %d", tier.value, page)
            return state.listing

        state.page = page
        state.listing = listing
        return listing

    async def go_to_page(self, tier: Tier, page: int) -> ListingPage:
        """Move one tier to ``page`` (clamped to the known range). The other tier is untouched.

        Raises:
            httpx.HTTPError: the fetch failed; the tier keeps its previous page.
        """
        state = self.tiers[tier]
        last = max(state.listing.total_pages - 1, 0)
        return await self._fetch_tier(tier, min(max(page, 0), last))

    async def next_page(self, tier: Tier) -> ListingPage:
        state = self.tiers[tier]
        if state.page >= state.listing.total_pages - 1:
            return state.listing
        return await self.go_to_page(tier, state.page + 1)

    async def previous_page(self, tier: Tier) -> ListingPage:
        state = self.tiers[tier]
        if state.page <= 0:
            return state.listing
        return await self.go_to_page(tier, state.page - 1)

    async def refresh(self) -> None:
        """Reset both tiers to page 0 and refetch them concurrently.

        Both tiers are attempted even if one fails; the first failure is
        re-raised afterwards.
        """
        results = await asyncio.gather(
            *(self._fetch_tier(tier, 0) for tier in Tier), return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, Exception)]
        for tier, result in zip(Tier, results):
            if isinstance(result, Exception):
                logger.error("Error fetching %s rooms: %s", tier.value, result,
                             extra={"user_id": self.user_id, "tier": tier.value})
        if errors:
            raise errors[0]
