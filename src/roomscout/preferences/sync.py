"""User search preferences: load on session start, patch on change.

The remote preference API is the system of record. Loading never raises:
an unreachable API yields None ("unknown"), which callers keep distinct
from a user who simply never saved anything (an empty UserPreference).
Writes send only the fields the caller set and are serialized per user,
so a save triggered by a search cannot interleave with a manual
"save my location" for the same account.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any

import httpx
from pydantic import ValidationError

from roomscout.api.client import MarketplaceClient, unwrap_data
from roomscout.api.schemas import PreferenceUpdate, UserPreference, normalize_bool

logger = logging.getLogger(__name__)

_SCALARS = (bool, int, float, str)


def extract_email_flag(body: Any) -> Any:
    """Find the raw email-notification value in any of the backend's response shapes.

    Accepts a bare scalar, ``{data: scalar}``, ``{data: {emailNotifications}}``,
    ``{data: {enabled}}``, ``{emailNotifications}`` or ``{enabled}``.
    Returns None when no value is present.
    """
    if body is None or isinstance(body, _SCALARS):
        return body
    if not isinstance(body, dict):
        return None

    if "data" in body and body["data"] is not None:
        data = body["data"]
        if isinstance(data, _SCALARS):
            return data
        if isinstance(data, dict):
            for key in ("emailNotifications", "enabled"):
                if data.get(key) is not None:
                    return data[key]
    for key in ("emailNotifications", "enabled"):
        if body.get(key) is not None:
            return body[key]
    return None


def _echoed_fields(data: Any) -> dict[str, Any]:
    """Non-null preference fields from a save response.

    Status-only bodies like ``{"success": true, "message": ...}`` carry no
    preference keys and yield an empty dict.
    """
    if not isinstance(data, dict):
        return {}
    try:
        echo = UserPreference.model_validate(data)
    except ValidationError:
        logger.debug("Preference save returned an unparseable body; keeping the update")
        return {}
    return {
        name: getattr(echo, name)
        for name in echo.model_fields_set
        if name in UserPreference.model_fields and name != "user_id" and getattr(echo, name) is not None
    }


class PreferenceSync:
    """Reads and writes a user's saved search preference."""

    def __init__(self, client: MarketplaceClient):
        self._client = client
        self._write_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def load(self, user_id: str) -> UserPreference | None:
        """Fetch the saved preference.

        Returns:
            The preference (possibly with every field empty), or None if it
            could not be loaded.
        """
        try:
            body = await self._client.get(f"/profile/{user_id}/preferences")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                logger.info("No saved preferences for user", extra={"user_id": user_id})
                return UserPreference(user_id=user_id)
            logger.error("Error loading preferences: HTTP %d", e.response.status_code,
                         extra={"user_id": user_id})
            return None
        except httpx.HTTPError as e:
            logger.error("Error loading preferences: %s", e, extra={"user_id": user_id})
            return None

        data = unwrap_data(body)
        if data is None:
            return UserPreference(user_id=user_id)
        if not isinstance(data, dict):
            logger.warning("Unexpected preference shape: %s", type(data).__name__,
                           extra={"user_id": user_id})
            return None
        try:
            pref = UserPreference.model_validate(data)
        except ValidationError as e:
            logger.warning("Invalid preference payload: %s", e, extra={"user_id": user_id})
            return None

        logger.info("Preferences loaded", extra={"user_id": user_id})
        return pref.model_copy(update={"user_id": user_id})

    async def save(
        self,
        user_id: str,
        update: PreferenceUpdate,
        base: UserPreference | None = None,
    ) -> UserPreference:
        """Persist a partial update. Only the fields set on ``update`` are sent.

        The result is ``base`` (the preference the caller already holds) with
        the update merged in, then overlaid with any preference fields the
        server echoed back. Fields neither side touched keep their values.

        Raises:
            httpx.HTTPError: the write failed; it is not retried.
        """
        payload = update.to_payload()
        async with self._write_locks[user_id]:
            logger.info("Saving preferences (%s)", ", ".join(sorted(payload)) or "no fields",
                        extra={"user_id": user_id})
            body = await self._client.post(f"/profile/{user_id}/preferences", json=payload)

        merged = update.apply_to(base or UserPreference(user_id=user_id))
        echoed = _echoed_fields(unwrap_data(body))
        if echoed:
            merged = merged.model_copy(update=echoed)
        return merged.model_copy(update={"user_id": user_id})

    async def read_email_notification(self, user_id: str) -> bool:
        body = await self._client.get("/profile/email-notifications", params={"userId": user_id})
        enabled = normalize_bool(extract_email_flag(body))
        logger.info("Email notifications: %s", enabled, extra={"user_id": user_id})
        return enabled

    async def write_email_notification(self, user_id: str, enabled: bool) -> bool:
        """Toggle email notifications and return the value the server confirmed."""
        async with self._write_locks[user_id]:
            body = await self._client.patch(
                f"/profile/{user_id}/email-notifications", json={"enabled": enabled},
            )
        raw = extract_email_flag(body)
        confirmed = enabled if raw is None else normalize_bool(raw)
        logger.info("Email notifications set to %s", confirmed, extra={"user_id": user_id})
        return confirmed
