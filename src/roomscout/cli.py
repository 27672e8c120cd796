"""roomscout CLI: address search and region browsing commands."""

import asyncio
import sys

import httpx

from roomscout.config import check_configuration, settings
from roomscout.observability.logging import setup_logging
from roomscout.observability.tracing import init_tracing


def _init() -> None:
    """Configure logging and tracing, and report configuration problems."""
    setup_logging(json_format=settings.log_json, level=settings.log_level)
    init_tracing()
    check_configuration()


def main() -> None:
    """Search rooms near an address: roomscout <address>"""
    _init()

    if len(sys.argv) < 2:
        print("Usage: roomscout <address>")
        print('  Example: roomscout "123 Le Loi, Ben Nghe, District 1, Ho Chi Minh"')
        sys.exit(1)

    address = " ".join(sys.argv[1:])
    sys.exit(asyncio.run(_search(address)))


async def _search(address: str) -> int:
    """Address → geocode → both tiers, printed."""
    from roomscout.api.client import MarketplaceClient
    from roomscout.core.types import GeoFailure, Tier
    from roomscout.discovery.session import DiscoverySession

    session = DiscoverySession(MarketplaceClient())
    print(f"\nSearching rooms near: {address}\n")

    try:
        result = await session.search_by_address(address)
    except httpx.HTTPError as e:
        print(f"Could not load rooms: {e}")
        return 1
    if isinstance(result, GeoFailure):
        print(f"{result.user_message} ({result.reason.value}: {result.detail})")
        return 1

    print(f"Coordinates:  {result.point.lat}, {result.point.lng}")
    for tier, title in ((Tier.PREMIUM, "Premium"), (Tier.STANDARD, "Standard")):
        listing = session.listing(tier)
        print(f"\n{'─' * 50}")
        print(f"{title} rooms (page {listing.page_number + 1}/{listing.total_pages}, "
              f"{listing.total_records} total):")
        if not listing.items:
            print("  (none)")
        for room in listing.items:
            price = f"{room.price_month:,.0f}/month" if room.price_month is not None else "price n/a"
            print(f"  [{room.id}] {room.title} | {price}")
            if room.address_line:
                print(f"      {room.address_line}")
    return 0


def regions_main() -> None:
    """Browse the region hierarchy: roomscout-regions [province_id [district_id]]"""
    _init()

    args = sys.argv[1:]
    if args and args[0] == "--help":
        print("Usage: roomscout-regions [province_id [district_id]]")
        print("  no args:                 list provinces")
        print("  <province_id>:           list its districts")
        print("  <province_id> <district_id>: list the district's wards")
        sys.exit(0)

    sys.exit(asyncio.run(_browse_regions(args)))


async def _browse_regions(args: list[str]) -> int:
    from roomscout.api.client import MarketplaceClient
    from roomscout.core.types import LoadStatus, RegionLevel
    from roomscout.regions.cascade import RegionCascade

    cascade = RegionCascade(MarketplaceClient())
    await cascade.load_provinces()
    level = RegionLevel.PROVINCE
    if len(args) >= 1:
        await cascade.select_province(args[0])
        level = RegionLevel.DISTRICT
    if len(args) >= 2:
        await cascade.select_district(args[1])
        level = RegionLevel.WARD

    state = cascade.state(level)
    if state.status is not LoadStatus.LOADED:
        print(f"Could not load {level.value} options ({state.status.value}).")
        return 1

    print(f"\n{len(state.options)} {level.value} options:")
    for node in state.options:
        print(f"  {node.id:<10} {node.name}")
    return 0


if __name__ == "__main__":
    main()
