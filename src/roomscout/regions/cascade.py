"""Province → district → ward cascade over the region-hierarchy API.

Each level moves through EMPTY → LOADING → LOADED | LOAD_ERROR. Selecting a
parent clears every level below it before the child list is fetched, so a
district can never be selected under the wrong province, not even while a
saved preference is being restored.

Stale responses are discarded with a per-level generation counter: a fetch
remembers the generation it was dispatched under and its result is applied
only if that generation is still current when it arrives.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from roomscout.api.client import MarketplaceClient, unwrap_data
from roomscout.core.types import CascadeSelection, LoadStatus, RegionLevel, RegionNode, RoomFilters

logger = logging.getLogger(__name__)

_CHILD_LEVEL = {
    RegionLevel.PROVINCE: RegionLevel.DISTRICT,
    RegionLevel.DISTRICT: RegionLevel.WARD,
}


@dataclass
class LevelState:
    """Options and selection for one cascade level."""

    status: LoadStatus = LoadStatus.EMPTY
    options: tuple[RegionNode, ...] = ()
    parent_id: str | None = None
    selected_id: str | None = None
    selected_label: str = ""
    generation: int = 0


def parse_region_nodes(body: Any, parent_id: str | None = None) -> list[RegionNode]:
    """Normalize an array or ``{data: array}`` of ``{id, name}`` into RegionNodes."""
    items = unwrap_data(body)
    if not isinstance(items, list):
        logger.warning("Unexpected region response shape: %s", type(items).__name__)
        return []

    nodes = []
    for item in items:
        if not isinstance(item, dict) or item.get("id") is None:
            continue
        nodes.append(RegionNode(id=str(item["id"]), name=str(item.get("name") or ""), parent_id=parent_id))
    return nodes


class RegionCascade:
    """Dependent province/district/ward selection state machine."""

    def __init__(self, client: MarketplaceClient):
        self._client = client
        self._levels = {level: LevelState() for level in RegionLevel}
        self._epoch = 0  # bumped by every selection, used to abort restores

    def state(self, level: RegionLevel) -> LevelState:
        return self._levels[level]

    def options(self, level: RegionLevel) -> tuple[RegionNode, ...]:
        return self._levels[level].options

    @property
    def selection(self) -> CascadeSelection:
        province = self._levels[RegionLevel.PROVINCE]
        district = self._levels[RegionLevel.DISTRICT]
        ward = self._levels[RegionLevel.WARD]
        return CascadeSelection(
            province_id=province.selected_id,
            district_id=district.selected_id,
            ward_id=ward.selected_id,
            province_label=province.selected_label,
            district_label=district.selected_label,
            ward_label=ward.selected_label,
        )

    def filters(self) -> RoomFilters:
        sel = self.selection
        return RoomFilters(province_id=sel.province_id, district_id=sel.district_id, ward_id=sel.ward_id)

    # ------------------------------------------------------------------
    # Internal state transitions
    # ------------------------------------------------------------------

    def _clear(self, level: RegionLevel) -> None:
        state = self._levels[level]
        state.status = LoadStatus.EMPTY
        state.options = ()
        state.parent_id = None
        state.selected_id = None
        state.selected_label = ""
        state.generation += 1

    def _clear_below(self, level: RegionLevel) -> None:
        child = _CHILD_LEVEL.get(level)
        while child is not None:
            self._clear(child)
            child = _CHILD_LEVEL.get(child)

    def _label_for(self, level: RegionLevel, node_id: str, label: str) -> str:
        if label:
            return label
        for node in self._levels[level].options:
            if node.id == node_id:
                return node.name
        return ""

    def _find(self, level: RegionLevel, node_id: Any) -> RegionNode | None:
        if node_id is None or node_id == "":
            return None
        wanted = str(node_id)
        return next((n for n in self._levels[level].options if n.id == wanted), None)

    async def _load(self, level: RegionLevel, path: str, parent_id: str | None) -> None:
        state = self._levels[level]
        state.generation += 1
        generation = state.generation
        state.status = LoadStatus.LOADING
        state.parent_id = parent_id

        try:
            body = await self._client.get(path)
        except httpx.HTTPError as e:
            if state.generation != generation:
                logger.debug("Discarding stale %s load error for parent %s", level.value, parent_id)
                return
            logger.error("Error loading %s options for parent %s: %s", level.value, parent_id, e)
            state.status = LoadStatus.LOAD_ERROR
            return

        if state.generation != generation:
            logger.debug("Discarding stale %s options for parent %s", level.value, parent_id)
            return

        state.options = tuple(parse_region_nodes(body, parent_id))
        state.status = LoadStatus.LOADED
        logger.info("Loaded %d %s options", len(state.options), level.value)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def load_provinces(self) -> None:
        await self._load(RegionLevel.PROVINCE, "/provinces", None)

    async def select_province(self, province_id: Any, label: str = "") -> None:
        """Select (or clear, with a falsy id) a province and load its districts."""
        self._epoch += 1
        pid = str(province_id) if province_id not in (None, "") else None
        province = self._levels[RegionLevel.PROVINCE]
        province.selected_id = pid
        province.selected_label = self._label_for(RegionLevel.PROVINCE, pid, label) if pid else ""
        self._clear_below(RegionLevel.PROVINCE)

        if pid:
            await self._load(RegionLevel.DISTRICT, f"/districts/{pid}", pid)

    async def select_district(self, district_id: Any, label: str = "") -> None:
        """Select (or clear, with a falsy id) a district and load its wards."""
        self._epoch += 1
        did = str(district_id) if district_id not in (None, "") else None
        district = self._levels[RegionLevel.DISTRICT]
        district.selected_id = did
        district.selected_label = self._label_for(RegionLevel.DISTRICT, did, label) if did else ""
        self._clear_below(RegionLevel.DISTRICT)

        if did:
            await self._load(RegionLevel.WARD, f"/wards/{did}", did)

    def select_ward(self, ward_id: Any, label: str = "") -> None:
        self._epoch += 1
        wid = str(ward_id) if ward_id not in (None, "") else None
        ward = self._levels[RegionLevel.WARD]
        ward.selected_id = wid
        ward.selected_label = self._label_for(RegionLevel.WARD, wid, label) if wid else ""

    def clear(self) -> None:
        self._epoch += 1
        province = self._levels[RegionLevel.PROVINCE]
        province.selected_id = None
        province.selected_label = ""
        self._clear_below(RegionLevel.PROVINCE)

    async def restore(self, province_id: Any, district_id: Any = None, ward_id: Any = None) -> bool:
        """Re-apply a saved province/district/ward triple, level by level.

        Stops at the first id missing from its level's options. Gives up
        without touching anything further if the user makes a selection
        while a level is loading. Returns True if every given id was applied.
        """
        if self._levels[RegionLevel.PROVINCE].status is not LoadStatus.LOADED:
            await self.load_provinces()

        steps = (
            (RegionLevel.PROVINCE, province_id, self.select_province),
            (RegionLevel.DISTRICT, district_id, self.select_district),
        )
        for level, node_id, select in steps:
            if node_id in (None, ""):
                return True
            node = self._find(level, node_id)
            if node is None:
                logger.info("Saved %s %s not among options, stopping restore", level.value, node_id)
                return False
            expected_epoch = self._epoch + 1
            await select(node.id, node.name)
            if self._epoch != expected_epoch:
                logger.debug("Cascade changed during restore, abandoning it")
                return False

        if ward_id in (None, ""):
            return True
        ward = self._find(RegionLevel.WARD, ward_id)
        if ward is None:
            logger.info("Saved ward %s not among options, stopping restore", ward_id)
            return False
        self.select_ward(ward.id, ward.name)
        return True
