"""Tests for the CLI commands, with the marketplace and geocoder mocked."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from roomscout.cli import _browse_regions, _search
from roomscout.core.types import GeoFailure, GeoFailureReason, GeoPoint, LocationSource, ResolvedLocation


def _marketplace(routes: dict) -> MagicMock:
    client = MagicMock()
    client.get = AsyncMock(side_effect=lambda path, params=None: routes[path])
    return client


class TestBrowseRegions:
    @pytest.mark.asyncio
    async def test_lists_provinces(self, capsys):
        client = _marketplace({"/provinces": [{"id": 79, "name": "Ho Chi Minh"}]})
        with patch("roomscout.api.client.MarketplaceClient", return_value=client):
            code = await _browse_regions([])

        assert code == 0
        out = capsys.readouterr().out
        assert "1 province options" in out
        assert "Ho Chi Minh" in out

    @pytest.mark.asyncio
    async def test_lists_wards(self, capsys):
        client = _marketplace({
            "/provinces": [{"id": 79, "name": "Ho Chi Minh"}],
            "/districts/79": [{"id": 760, "name": "District 1"}],
            "/wards/760": [{"id": 26734, "name": "Ben Nghe"}, {"id": 26737, "name": "Ben Thanh"}],
        })
        with patch("roomscout.api.client.MarketplaceClient", return_value=client):
            code = await _browse_regions(["79", "760"])

        assert code == 0
        assert "2 ward options" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_load_error(self, capsys):
        client = MagicMock()
        client.get = AsyncMock(side_effect=httpx.ConnectError("down"))
        with patch("roomscout.api.client.MarketplaceClient", return_value=client):
            code = await _browse_regions([])

        assert code == 1
        assert "load_error" in capsys.readouterr().out


class TestSearch:
    @pytest.mark.asyncio
    async def test_prints_both_tiers(self, capsys):
        client = _marketplace({
            "/rooms/allroom-vip": {"data": [{"id": 1, "title": "Penthouse", "priceMonth": 9000000}],
                                   "totalPages": 2, "totalRecords": 8},
            "/rooms/allroom-normal": [],
        })
        geo = MagicMock()
        geo.geocode = AsyncMock(return_value=ResolvedLocation(
            GeoPoint(10.7731, 106.7009), "provider text", LocationSource.EXPLICIT_SEARCH,
        ))
        with patch("roomscout.api.client.MarketplaceClient", return_value=client), \
             patch("roomscout.discovery.session.GeoResolver", return_value=geo):
            code = await _search("123 Le Loi")

        assert code == 0
        out = capsys.readouterr().out
        assert "Coordinates:  10.7731, 106.7009" in out
        assert "Premium rooms (page 1/2, 8 total)" in out
        assert "[1] Penthouse | 9,000,000/month" in out
        assert "(none)" in out

    @pytest.mark.asyncio
    async def test_geocode_failure(self, capsys):
        geo = MagicMock()
        geo.geocode = AsyncMock(return_value=GeoFailure(GeoFailureReason.MISSING_CREDENTIAL, "no key"))
        with patch("roomscout.api.client.MarketplaceClient", return_value=MagicMock()), \
             patch("roomscout.discovery.session.GeoResolver", return_value=geo):
            code = await _search("123 Le Loi")

        assert code == 1
        assert "Address lookup is not configured." in capsys.readouterr().out
