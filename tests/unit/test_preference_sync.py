"""Tests for preference load/save and the email-notification flag."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from roomscout.api.schemas import PreferenceUpdate, UserPreference, normalize_bool
from roomscout.preferences.sync import PreferenceSync, extract_email_flag


def _http_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "http://test/api/profile")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


def _client(get=None, post=None, patch=None) -> MagicMock:
    client = MagicMock()
    client.get = AsyncMock(**(get or {}))
    client.post = AsyncMock(**(post or {}))
    client.patch = AsyncMock(**(patch or {}))
    return client


class TestNormalizeBool:
    @pytest.mark.parametrize("value", [True, 1, 1.0, "1", "true", "TRUE", " yes ", "On"])
    def test_truthy(self, value):
        assert normalize_bool(value) is True

    @pytest.mark.parametrize("value", [False, 0, 2, -1, "0", "false", "no", "off", "", "maybe", None, [], {}])
    def test_falsy(self, value):
        assert normalize_bool(value) is False


class TestExtractEmailFlag:
    @pytest.mark.parametrize("body, expected", [
        (True, True),
        ("yes", "yes"),
        ({"data": 1}, 1),
        ({"data": {"emailNotifications": "true"}}, "true"),
        ({"data": {"enabled": False}}, False),
        ({"emailNotifications": 0}, 0),
        ({"enabled": "on"}, "on"),
        ({"data": None, "enabled": True}, True),
        ({}, None),
        (None, None),
        ([1], None),
    ])
    def test_shapes(self, body, expected):
        assert extract_email_flag(body) == expected


class TestLoad:
    @pytest.mark.asyncio
    async def test_enveloped_preference(self):
        client = _client(get={"return_value": {"data": {
            "provinceId": 79,
            "districtId": 760,
            "wardId": None,
            "latitude": 10.7769,
            "longitude": 106.7009,
            "searchAddress": "Ben Thanh Market",
            "emailNotifications": "yes",
        }}})
        pref = await PreferenceSync(client).load("u1")

        client.get.assert_awaited_once_with("/profile/u1/preferences")
        assert pref.user_id == "u1"
        assert pref.province_id == "79"
        assert pref.district_id == "760"
        assert pref.ward_id is None
        assert pref.has_coordinates
        assert pref.search_address == "Ben Thanh Market"
        assert pref.email_notifications is True

    @pytest.mark.asyncio
    async def test_bare_preference(self):
        client = _client(get={"return_value": {"latitude": 21.0285, "longitude": 105.8542}})
        pref = await PreferenceSync(client).load("u1")
        assert pref.latitude == 21.0285
        assert not pref.has_region

    @pytest.mark.asyncio
    async def test_not_found_is_an_empty_preference(self):
        client = _client(get={"side_effect": _http_error(404)})
        pref = await PreferenceSync(client).load("u1")
        assert pref == UserPreference(user_id="u1")

    @pytest.mark.asyncio
    async def test_null_body_is_an_empty_preference(self):
        client = _client(get={"return_value": None})
        pref = await PreferenceSync(client).load("u1")
        assert pref is not None
        assert not pref.has_coordinates

    @pytest.mark.asyncio
    async def test_server_error_is_unknown(self):
        client = _client(get={"side_effect": _http_error(500)})
        assert await PreferenceSync(client).load("u1") is None

    @pytest.mark.asyncio
    async def test_network_error_is_unknown(self):
        client = _client(get={"side_effect": httpx.ConnectError("refused")})
        assert await PreferenceSync(client).load("u1") is None

    @pytest.mark.asyncio
    async def test_unexpected_shape_is_unknown(self):
        client = _client(get={"return_value": ["not", "a", "preference"]})
        assert await PreferenceSync(client).load("u1") is None

    @pytest.mark.asyncio
    async def test_invalid_payload_is_unknown(self):
        client = _client(get={"return_value": {"latitude": "north-ish"}})
        assert await PreferenceSync(client).load("u1") is None


class TestSave:
    @pytest.mark.asyncio
    async def test_sends_only_set_fields_in_camel_case(self):
        client = _client(post={"return_value": None})
        update = PreferenceUpdate(latitude=10.776, longitude=106.7, search_address="District 1")

        await PreferenceSync(client).save("u1", update)

        client.post.assert_awaited_once_with(
            "/profile/u1/preferences",
            json={"latitude": 10.776, "longitude": 106.7, "searchAddress": "District 1"},
        )

    @pytest.mark.asyncio
    async def test_region_ids_stringified(self):
        client = _client(post={"return_value": None})
        await PreferenceSync(client).save("u1", PreferenceUpdate(province_id=79, ward_id=None))

        payload = client.post.await_args.kwargs["json"]
        assert payload == {"provinceId": "79", "wardId": None}

    @pytest.mark.asyncio
    async def test_returns_server_echo(self):
        client = _client(post={"return_value": {"data": {
            "latitude": 10.0, "longitude": 106.0, "searchAddress": "echoed", "provinceId": 79,
        }}})
        saved = await PreferenceSync(client).save(
            "u1", PreferenceUpdate(latitude=10.0, longitude=106.0, search_address="sent"),
        )
        assert saved.search_address == "echoed"
        assert saved.province_id == "79"
        assert saved.user_id == "u1"

    @pytest.mark.asyncio
    async def test_empty_response_falls_back_to_update(self):
        client = _client(post={"return_value": None})
        saved = await PreferenceSync(client).save(
            "u1", PreferenceUpdate(latitude=10.0, longitude=106.0, search_address="sent"),
        )
        assert saved.search_address == "sent"
        assert saved.has_coordinates
        assert saved.province_id is None

    @pytest.mark.asyncio
    async def test_status_response_merges_into_base(self):
        client = _client(post={"return_value": {"success": True, "message": "Preferences updated"}})
        base = UserPreference(
            user_id="u1", latitude=21.0, longitude=105.8, search_address="Hoan Kiem",
            province_id="1", min_price=2000000,
        )
        saved = await PreferenceSync(client).save("u1", PreferenceUpdate(max_price=5000000), base=base)

        assert (saved.latitude, saved.longitude) == (21.0, 105.8)
        assert saved.search_address == "Hoan Kiem"
        assert saved.province_id == "1"
        assert (saved.min_price, saved.max_price) == (2000000, 5000000)
        assert saved.user_id == "u1"

    @pytest.mark.asyncio
    async def test_partial_echo_only_overlays_its_fields(self):
        client = _client(post={"return_value": {"data": {"searchAddress": "Hoan Kiem, Ha Noi", "wardId": None}}})
        base = UserPreference(user_id="u1", latitude=21.0, longitude=105.8, ward_id="9")
        saved = await PreferenceSync(client).save(
            "u1", PreferenceUpdate(search_address="Hoan Kiem"), base=base,
        )

        assert saved.search_address == "Hoan Kiem, Ha Noi"
        assert saved.ward_id == "9"
        assert saved.has_coordinates

    @pytest.mark.asyncio
    async def test_failure_propagates(self):
        client = _client(post={"side_effect": _http_error(500)})
        with pytest.raises(httpx.HTTPStatusError):
            await PreferenceSync(client).save("u1", PreferenceUpdate(latitude=1.0, longitude=2.0))
        assert client.post.await_count == 1

    @pytest.mark.asyncio
    async def test_writes_for_one_user_are_serialized(self):
        active = 0
        overlap = False

        async def slow_post(path, json=None):
            nonlocal active, overlap
            active += 1
            if active > 1:
                overlap = True
            await asyncio.sleep(0.01)
            active -= 1
            return None

        client = _client(post={"side_effect": slow_post})
        sync = PreferenceSync(client)
        await asyncio.gather(
            sync.save("u1", PreferenceUpdate(search_address="a")),
            sync.save("u1", PreferenceUpdate(search_address="b")),
            sync.save("u1", PreferenceUpdate(search_address="c")),
        )

        assert client.post.await_count == 3
        assert overlap is False


class TestEmailNotifications:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("body, expected", [
        (True, True),
        ({"data": 1}, True),
        ({"data": {"emailNotifications": "true"}}, True),
        ({"data": {"enabled": "yes"}}, True),
        ({"enabled": "0"}, False),
        ({"emailNotifications": "off"}, False),
        ({}, False),
        (None, False),
        ("garbage", False),
    ])
    async def test_read_normalizes_every_shape(self, body, expected):
        client = _client(get={"return_value": body})
        enabled = await PreferenceSync(client).read_email_notification("u1")

        assert enabled is expected
        client.get.assert_awaited_once_with("/profile/email-notifications", params={"userId": "u1"})

    @pytest.mark.asyncio
    async def test_read_propagates_transport_errors(self):
        client = _client(get={"side_effect": httpx.ConnectError("refused")})
        with pytest.raises(httpx.ConnectError):
            await PreferenceSync(client).read_email_notification("u1")

    @pytest.mark.asyncio
    async def test_write_returns_confirmed_value(self):
        client = _client(patch={"return_value": {"data": {"enabled": 0}}})
        confirmed = await PreferenceSync(client).write_email_notification("u1", True)

        client.patch.assert_awaited_once_with("/profile/u1/email-notifications", json={"enabled": True})
        assert confirmed is False

    @pytest.mark.asyncio
    async def test_write_without_echo_assumes_requested_value(self):
        client = _client(patch={"return_value": None})
        assert await PreferenceSync(client).write_email_notification("u1", True) is True
