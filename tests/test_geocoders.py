from __future__ import annotations

import asyncio

import httpx
import requests

from jobmap.geocoding import GeocodeStatus, GeocodingConfig, MapboxGeocoder


FEATURE = {
    "center": [-89.65, 39.78],
    "context": [
        {"id": "place.123", "text": "Springfield"},
        {"id": "postcode.456", "text": "62704"},
    ],
    "properties": {},
}


class StubResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class StubSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, params=None, timeout=None, headers=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def make_async_geocoder(config, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MapboxGeocoder(config, async_client=client), client


def run_async(geocoder, client, address):
    async def go():
        try:
            return await geocoder.geocode_detailed(address)
        finally:
            await client.aclose()
    return asyncio.run(go())


def test_async_lookup_builds_request_and_reads_center_lng_first(config):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"features": [FEATURE]})

    geocoder, client = make_async_geocoder(config, handler)
    outcome = run_async(geocoder, client, "1 Main St, Springfield, IL 62704")

    assert outcome.status == GeocodeStatus.OK
    assert outcome.result.lat == 39.78
    assert outcome.result.lng == -89.65
    assert outcome.result.zip == "62704"
    assert seen["path"].endswith("/1 Main St, Springfield, IL 62704.json")
    assert seen["params"] == {
        "access_token": "pk.test-token",
        "limit": "1",
        "types": "address,place,postcode",
    }


def test_async_no_features_is_not_found(config):
    geocoder, client = make_async_geocoder(config, lambda r: httpx.Response(200, json={"features": []}))

    outcome = run_async(geocoder, client, "nowhere")

    assert outcome.status == GeocodeStatus.NOT_FOUND
    assert outcome.result is None


def test_async_http_error_is_api_error(config):
    geocoder, client = make_async_geocoder(config, lambda r: httpx.Response(401, text="Not Authorized"))

    outcome = run_async(geocoder, client, "1 Main St")

    assert outcome.status == GeocodeStatus.API_ERROR
    assert outcome.http_status == 401


def test_async_transport_error_never_raises(config):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    geocoder, client = make_async_geocoder(config, handler)

    outcome = run_async(geocoder, client, "1 Main St")

    assert outcome.status == GeocodeStatus.EXCEPTION
    assert "connection refused" in outcome.message


def test_geocode_once_collapses_failures_to_none(config):
    geocoder, client = make_async_geocoder(config, lambda r: httpx.Response(500, text="oops"))

    async def go():
        try:
            return await geocoder.geocode_once("1 Main St")
        finally:
            await client.aclose()

    assert asyncio.run(go()) is None


def test_missing_or_malformed_token_is_config_error_without_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"features": [FEATURE]})

    for token in ("", "sk.secret"):
        geocoder, client = make_async_geocoder(GeocodingConfig(access_token=token), handler)
        outcome = run_async(geocoder, client, "1 Main St")
        assert outcome.status == GeocodeStatus.CONFIG_ERROR

    assert calls == []


def test_empty_address_is_invalid_input(config):
    session = StubSession(StubResponse(payload={"features": [FEATURE]}))
    geocoder = MapboxGeocoder(config, session=session)

    outcome = geocoder.lookup_detailed("  ")

    assert outcome.status == GeocodeStatus.INVALID_INPUT
    assert session.calls == []


def test_sync_lookup_uses_session_and_timeout(config):
    session = StubSession(StubResponse(payload={"features": [FEATURE]}))
    geocoder = MapboxGeocoder(config, session=session)

    result = geocoder.lookup("1 Main St, Springfield, IL 62704")

    assert result.lat == 39.78 and result.lng == -89.65
    assert session.calls[0]["timeout"] == config.timeout
    assert session.calls[0]["url"].startswith(config.base_url)
    assert session.calls[0]["url"].endswith(".json")


def test_sync_lookup_swallows_session_errors(config):
    session = StubSession(error=requests.ConnectionError("down"))
    geocoder = MapboxGeocoder(config, session=session)

    assert geocoder.lookup("1 Main St") is None
    assert geocoder.lookup_detailed("1 Main St").status == GeocodeStatus.EXCEPTION


def test_sync_lookup_bad_json_is_exception(config):
    session = StubSession(StubResponse(payload=ValueError("not json")))
    geocoder = MapboxGeocoder(config, session=session)

    assert geocoder.lookup_detailed("1 Main St").status == GeocodeStatus.EXCEPTION


def test_extract_postcode_prefers_context_then_properties():
    assert MapboxGeocoder.extract_postcode(FEATURE) == "62704"
    assert MapboxGeocoder.extract_postcode({
        "context": [{"id": "postcode.1", "properties": {"short_code": "10001"}}],
    }) == "10001"
    assert MapboxGeocoder.extract_postcode({"properties": {"postcode": "60601"}}) == "60601"
    assert MapboxGeocoder.extract_postcode({"context": [{"id": "place.1", "text": "X"}]}) is None


def test_out_of_range_center_is_not_found(config):
    session = StubSession(StubResponse(payload={"features": [{"center": [200, 95]}]}))
    geocoder = MapboxGeocoder(config, session=session)

    assert geocoder.lookup_detailed("1 Main St").status == GeocodeStatus.NOT_FOUND


class RecordingGeocoder(MapboxGeocoder):
    """Builds its own clients on a mock transport and keeps every one it opens."""

    def __init__(self, config, handler):
        super().__init__(config)
        self.handler = handler
        self.opened = []

    def _new_async_client(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        self.opened.append(client)
        return client


def test_async_lookups_share_one_client_per_loop(config):
    requests_seen = []

    def handler(request):
        requests_seen.append(request.url.path)
        return httpx.Response(200, json={"features": [FEATURE]})

    geocoder = RecordingGeocoder(config, handler)

    async def go():
        first = await geocoder.geocode_once("1 Main St")
        second = await geocoder.geocode_once("2 Main St")
        await geocoder.aclose()
        return first, second

    first, second = asyncio.run(go())

    assert (first.lat, second.lat) == (39.78, 39.78)
    assert len(requests_seen) == 2
    assert len(geocoder.opened) == 1
    assert geocoder.opened[0].is_closed

    # A later event loop gets a fresh client
    asyncio.run(go())
    assert len(geocoder.opened) == 2


def test_injected_client_is_left_open(config):
    geocoder, client = make_async_geocoder(config, lambda r: httpx.Response(200, json={"features": [FEATURE]}))

    async def go():
        await geocoder.geocode_once("1 Main St")
        await geocoder.aclose()
        closed = client.is_closed
        await client.aclose()
        return closed

    assert asyncio.run(go()) is False
