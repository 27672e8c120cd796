"""Goong geocoding: address to coordinates, coordinates to address.

Forward geocoding is user-triggered and runs a single attempt: a failure is
shown to the user right away instead of hiding behind retries. Reverse
geocoding backs a "save my current location" action and retries transient
provider failures (5xx, network errors, timeouts) with exponential backoff,
each attempt under a hard timeout.

Expected outcomes (no credential, no match, provider down) are returned
as GeoFailure values, never raised.
"""

import asyncio
import logging

import httpx
import mlflow
from mlflow.entities import SpanType

from roomscout.config import settings
from roomscout.core.types import (
    GeoFailure,
    GeoFailureReason,
    GeoPoint,
    GeoResult,
    LocationSource,
    ResolvedLocation,
)

logger = logging.getLogger(__name__)

GEOCODE_PATH = "/Geocode"


class _ProviderCallError(Exception):
    """One failed provider call, classified for the retry loop."""

    def __init__(self, reason: GeoFailureReason, detail: str, retryable: bool):
        super().__init__(detail)
        self.reason = reason
        self.detail = detail
        self.retryable = retryable


def build_address_string(
    specific_address: str | None = None,
    ward_name: str | None = None,
    district_name: str | None = None,
    province_name: str | None = None,
) -> str:
    """Join address parts from most to least specific, skipping blanks.

    '123 Le Loi', 'Ben Nghe', 'District 1', '' → '123 Le Loi, Ben Nghe, District 1'
    """
    parts = [specific_address, ward_name, district_name, province_name]
    return ", ".join(p.strip() for p in parts if p and p.strip())


def coordinate_label(point: GeoPoint) -> str:
    """Fallback display address when reverse geocoding fails."""
    return f"Location: {point.lat:.6f}, {point.lng:.6f}"


class GeoResolver:
    """Client for a Goong-compatible geocoding provider."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ):
        self.api_key = settings.geocoding_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.geocoding_base_url).rstrip("/")
        self.timeout = timeout or settings.reverse_geocode_timeout
        self.max_attempts = max_attempts or settings.reverse_geocode_max_attempts
        self.base_delay = settings.retry_base_delay if base_delay is None else base_delay
        self._credential_reported = False

    @property
    def url(self) -> str:
        return f"{self.base_url}{GEOCODE_PATH}"

    def _missing_credential(self) -> GeoFailure:
        if not self._credential_reported:
            logger.error("GEOCODING_API_KEY not set, geocoding disabled")
            self._credential_reported = True
        return GeoFailure(GeoFailureReason.MISSING_CREDENTIAL, "geocoding API key not configured")

    async def _fetch_results(self, params: dict[str, str]) -> list:
        """Run one provider call under a hard timeout and return its ``results`` list."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await asyncio.wait_for(
                    client.get(
                        self.url,
                        params={**params, "api_key": self.api_key},
                        headers={"Accept": "application/json"},
                    ),
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                data = resp.json()
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise _ProviderCallError(
                GeoFailureReason.TIMEOUT, f"no response within {self.timeout:g}s", retryable=True,
            ) from None
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise _ProviderCallError(
                GeoFailureReason.PROVIDER_ERROR, f"HTTP {status}", retryable=status >= 500,
            ) from e
        except httpx.HTTPError as e:
            raise _ProviderCallError(
                GeoFailureReason.NETWORK_ERROR, f"{type(e).__name__}: {e}", retryable=True,
            ) from e
        except ValueError as e:
            raise _ProviderCallError(
                GeoFailureReason.PROVIDER_ERROR, f"malformed body: {e}", retryable=False,
            ) from e

        if not isinstance(data, dict):
            raise _ProviderCallError(
                GeoFailureReason.PROVIDER_ERROR, "malformed body: not an object", retryable=False,
            )
        results = data.get("results") or []
        if not isinstance(results, list):
            raise _ProviderCallError(
                GeoFailureReason.PROVIDER_ERROR, "malformed body: results is not a list", retryable=False,
            )
        return results

    @mlflow.trace(name="geocode", span_type=SpanType.TOOL)
    async def geocode(self, address: str) -> GeoResult:
        """Forward-geocode free text. Single attempt, no retry.

        Returns:
            ResolvedLocation with the provider's coordinates and formatted
            address (the query text if the provider omits one), or a
            GeoFailure.
        """
        if not self.api_key:
            return self._missing_credential()

        query = (address or "").strip()
        if not query:
            return GeoFailure(GeoFailureReason.NOT_FOUND, "empty address")

        logger.info("Geocoding address: %s", query[:60])
        try:
            results = await self._fetch_results({"address": query})
        except _ProviderCallError as e:
            logger.error("Geocode failed for %s: %s", query[:60], e.detail)
            return GeoFailure(e.reason, e.detail, attempts=1)

        if not results:
            logger.warning("No geocoding results for: %s", query[:60])
            return GeoFailure(GeoFailureReason.NOT_FOUND, "no results", attempts=1)

        top = results[0]
        try:
            location = top["geometry"]["location"]
            point = GeoPoint(float(location["lat"]), float(location["lng"]))
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Unusable geocode result for %s: %r", query[:60], e)
            return GeoFailure(GeoFailureReason.PROVIDER_ERROR, f"malformed result: {e!r}", attempts=1)

        formatted = top.get("formatted_address") or query
        return ResolvedLocation(point=point, formatted_address=formatted, source=LocationSource.EXPLICIT_SEARCH)

    @mlflow.trace(name="reverse_geocode", span_type=SpanType.TOOL)
    async def reverse_geocode(self, point: GeoPoint, max_attempts: int | None = None) -> GeoResult:
        """Reverse-geocode a device fix with bounded retries.

        5xx, network errors and timeouts are retried after 2s, 4s, 8s, ...;
        4xx, malformed bodies and empty results end the call at once. The
        returned location keeps the request coordinates, not the provider's
        snapped ones.
        """
        if not self.api_key:
            return self._missing_credential()

        attempts = max(1, max_attempts or self.max_attempts)
        params = {"latlng": f"{point.lat},{point.lng}"}

        for attempt in range(1, attempts + 1):
            try:
                results = await self._fetch_results(params)
            except _ProviderCallError as e:
                if e.retryable and attempt < attempts:
                    delay = self.base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        "Reverse geocode %s (attempt %d/%d), retrying in %.1fs",
                        e.detail, attempt, attempts, delay,
                        extra={"attempt": attempt},
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(
                    "Reverse geocode failed after %d attempt(s): %s", attempt, e.detail,
                    extra={"attempt": attempt},
                )
                return GeoFailure(e.reason, e.detail, attempts=attempt)

            top = results[0] if results else None
            if top is not None and not isinstance(top, dict):
                logger.error("Malformed reverse geocoding result: %s", type(top).__name__,
                             extra={"attempt": attempt})
                return GeoFailure(GeoFailureReason.PROVIDER_ERROR, "malformed result", attempts=attempt)
            formatted = top.get("formatted_address") if top else None
            if not formatted:
                logger.warning("No reverse geocoding results for %s,%s", point.lat, point.lng)
                return GeoFailure(GeoFailureReason.NOT_FOUND, "no results", attempts=attempt)

            logger.info("Reverse geocoded %s,%s on attempt %d", point.lat, point.lng, attempt,
                        extra={"attempt": attempt})
            return ResolvedLocation(point=point, formatted_address=formatted, source=LocationSource.DEVICE_GPS)

        # attempts >= 1, so the loop always returns
        raise AssertionError("unreachable")
