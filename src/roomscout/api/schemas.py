"""Pydantic wire models for the marketplace API.

These are the API contract, decoupled from the internal domain dataclasses
in roomscout.core.types. The backend speaks camelCase and is loose about
types (ids arrive as ints or strings, booleans as 0/1 or "yes"), so every
model accepts both and keeps unknown fields.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_TRUTHY_STRINGS = frozenset({"1", "true", "yes", "on"})


def normalize_bool(value: Any) -> bool:
    """Normalize the backend's boolean representations. Never raises.

    True for True, 1, and "1"/"true"/"yes"/"on" (trimmed, any case);
    False for everything else, including None and unrecognized strings.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY_STRINGS
    return False


def _id_to_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


class _ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class UserPreference(_ApiModel):
    """A user's saved search location, region, and notification preference.

    Every field is optional: a user who never saved anything is a valid,
    empty preference.
    """

    user_id: str | None = None
    province_id: str | None = None
    district_id: str | None = None
    ward_id: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    min_area: float | None = None
    max_area: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    search_address: str | None = None
    email_notifications: bool = False

    @field_validator("user_id", "province_id", "district_id", "ward_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> str | None:
        return _id_to_str(value)

    @field_validator("email_notifications", mode="before")
    @classmethod
    def _normalize_flag(cls, value: Any) -> bool:
        return normalize_bool(value)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def has_region(self) -> bool:
        return bool(self.province_id)

    @property
    def has_ranges(self) -> bool:
        return any(v is not None for v in (self.min_price, self.max_price, self.min_area, self.max_area))


class PreferenceUpdate(_ApiModel):
    """Partial preference update. Only fields explicitly set are sent.

    Email notifications are deliberately absent: they have their own
    endpoint.
    """

    province_id: str | None = None
    district_id: str | None = None
    ward_id: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    min_area: float | None = None
    max_area: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    search_address: str | None = None

    @field_validator("province_id", "district_id", "ward_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> str | None:
        return _id_to_str(value)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)

    def apply_to(self, preference: UserPreference) -> UserPreference:
        """Return a copy of ``preference`` with this update's set fields merged in."""
        changes = {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if key in UserPreference.model_fields
        }
        return preference.model_copy(update=changes)


class RoomImage(_ApiModel):
    id: str | None = None
    url: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str | None:
        return _id_to_str(value)


class ListRoom(_ApiModel):
    """One listing card as returned by the tier endpoints."""

    id: str
    title: str = ""
    price_month: float | None = None
    area: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    is_vip: bool | None = None
    favorite_count: int | None = None
    images: list[RoomImage] = Field(default_factory=list)
    address: dict[str, Any] | None = None
    landlord: dict[str, Any] | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        if value is None or value == "":
            raise ValueError("listing id is required")
        return str(value)

    @property
    def address_line(self) -> str:
        """'street, ward, district, province' from the nested address, skipping blanks."""
        if not self.address:
            return ""
        parts = [self.address.get("street") or ""]
        node: Any = self.address
        for key in ("ward", "district", "province"):
            node = node.get(key) if isinstance(node, dict) else None
            if isinstance(node, dict):
                parts.append(node.get("name") or "")
        return ", ".join(p for p in parts if p)
