from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from jobmap.geocoding import GeocodeResult, GeocodeRunner, IntervalGate, MapboxGeocoder, NoOpRateLimiter
from jobmap.geocoding.runner import run_address
from jobmap.ingestion import JobRow
from jobmap.utils.errors import GeocodingConfigError, PersistenceError

from conftest import FakeGeocoder


def job(name, **fields):
    return JobRow(name=name, service_date=date(2024, 1, 5), price=50, **fields)


def seed(store):
    store.upsert([
        job("found", street="1 Main Street", city="Springfield", state="Illinois", zip="62704"),
        job("lost", full_address="9 Nowhere Rd"),
        job("done", street="2 Oak Ave", city="Chicago", state="IL", zip="60601", lat=41.0, lng=-87.0),
    ])


def test_run_updates_found_rows_and_fails_misses(store, config):
    seed(store)
    geocoder = FakeGeocoder({"1 Main St, Springfield, IL, 62704": GeocodeResult(lat=39.8, lng=-89.6, zip="62704")})

    summary = GeocodeRunner(store, geocoder, config).run()

    assert summary.to_dict() == {"attempted": 2, "success": 1, "failed": 1, "remaining": 0}
    assert sorted(geocoder.calls) == ["1 Main St, Springfield, IL, 62704", "9 Nowhere Rd"]
    rows = {r.name: r for r in store.select()}
    assert (rows["found"].lat, rows["found"].geocode_status) == (39.8, "OK")
    assert rows["lost"].geocode_status == "FAILED"
    assert rows["lost"].lat is None


def test_failed_rows_are_only_retried_on_request(store, config):
    seed(store)
    geocoder = FakeGeocoder()
    runner = GeocodeRunner(store, geocoder, config)
    runner.run()
    geocoder.calls.clear()

    assert runner.run().attempted == 0
    assert runner.run(include_failed=True).attempted == 2


def test_limit_is_clamped(store, config):
    store.upsert([job(str(i), full_address=f"{i} Elm St") for i in range(4)])
    runner = GeocodeRunner(store, FakeGeocoder(), replace(config, run_max_limit=3))

    assert runner.run(limit=0).attempted == 1
    assert runner.run(limit=100).attempted == 3


@pytest.mark.parametrize("token", ["", "   ", "pk.your_token_here", "placeholder", "sk.x", "not-a-token"])
def test_unusable_token_fails_before_any_lookup(store, config, token):
    seed(store)
    geocoder = FakeGeocoder()

    with pytest.raises(GeocodingConfigError):
        GeocodeRunner(store, geocoder, replace(config, access_token=token)).run()

    assert geocoder.calls == []


def test_update_errors_count_as_failures(store, config):
    seed(store)

    def broken_update(*args, **kwargs):
        raise PersistenceError("update job")

    store.update_geocode = broken_update
    geocoder = FakeGeocoder({"1 Main St, Springfield, IL, 62704": GeocodeResult(lat=1, lng=1)})

    summary = GeocodeRunner(store, geocoder, config).run()

    assert (summary.success, summary.failed) == (0, 2)


def test_run_address_prefers_parts():
    assert run_address(job("a", street="1 A St", city="X", full_address="ignored")) == "1 A St, X"
    assert run_address(job("b", full_address=" 2 B St ")) == "2 B St"


def test_zero_pacing_disables_the_gate(config):
    assert isinstance(IntervalGate.for_pacing(0), NoOpRateLimiter)
    assert isinstance(IntervalGate.for_pacing(0.1), IntervalGate)


def test_malformed_token_leaves_rows_pending(store, config):
    seed(store)
    bad = replace(config, access_token="sk.secret-token")

    with pytest.raises(GeocodingConfigError, match="malformed"):
        GeocodeRunner(store, MapboxGeocoder(bad), bad).run(limit=10)

    assert store.count_needing_geocode() == 2
    assert all(r.geocode_status is None for r in store.select())


def test_token_rejected_per_lookup_is_not_marked_failed(store, config):
    seed(store)
    # Run config passes its start check, the client's own token does not
    geocoder = MapboxGeocoder(replace(config, access_token="sk.other"))

    summary = GeocodeRunner(store, geocoder, config).run()

    assert summary.to_dict() == {"attempted": 2, "success": 0, "failed": 2, "remaining": 2}
    assert all(r.geocode_status is None for r in store.select())
