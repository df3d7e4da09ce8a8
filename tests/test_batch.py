from __future__ import annotations

import asyncio
from datetime import date

from jobmap.geocoding import GeocodeResult, GeocodeStatus, geocode_batch
from jobmap.geocoding.base import Geocoder
from jobmap.geocoding.models import GeocodeOutcome
from jobmap.ingestion import JobRow

from conftest import FakeGeocoder


def job(name, **fields):
    return JobRow(name=name, service_date=date(2024, 1, 5), price=100, **fields)


def run(rows, geocoder, **kwargs):
    kwargs.setdefault("pacing_s", 0)
    return asyncio.run(geocode_batch(rows, geocoder, **kwargs))


def test_output_keeps_input_order_and_length(fake_geocoder):
    rows = [
        job("A", full_address="1 Main St, Springfield, IL 62704", zip="00000"),
        job("B", full_address="9 Nowhere Rd"),
        job("C", full_address="2 Main Street, Springfield, Illinois 62704", zip="62704"),
    ]

    result = run(rows, fake_geocoder, concurrency=2)

    assert [r.name for r in result.rows] == ["A", "B", "C"]
    a, b, c = result.rows
    assert (a.lat, a.lng, a.zip) == (39.78, -89.65, "62704")
    assert a.geocode_status == "OK"
    assert b.lat is None and b.geocode_status == "FAILED"
    # Provider returned no zip: the row keeps its own
    assert (c.lat, c.zip) == (39.79, "62704")
    assert all(r.needs_geocode is False for r in result.rows)
    assert result.summary.to_dict() == {"attempted": 3, "success": 2, "failed": 1, "skipped": 0}


def test_addresses_are_normalized_before_lookup(fake_geocoder):
    rows = [job("C", full_address="  2 Main Street ,  Springfield, Illinois 62704")]

    run(rows, fake_geocoder)

    assert fake_geocoder.calls == ["2 Main St, Springfield, IL 62704"]


def test_rows_with_coordinates_are_never_sent(fake_geocoder):
    rows = [
        job("A", full_address="1 Main St, Springfield, IL 62704", lat=41.0, lng=-87.0),
        job("B", full_address="2 Main St, Springfield, IL 62704"),
    ]

    result = run(rows, fake_geocoder)

    assert fake_geocoder.calls == ["2 Main St, Springfield, IL 62704"]
    assert result.rows[0] == rows[0]
    assert result.summary.skipped == 1
    assert result.summary.attempted == 1


def test_empty_address_is_failed_without_a_call(fake_geocoder):
    rows = [job("A", needs_geocode=True)]

    result = run(rows, fake_geocoder)

    assert fake_geocoder.calls == []
    assert result.rows[0].needs_geocode is False
    assert result.rows[0].geocode_status == "FAILED"
    assert result.summary.failed == 1


def test_raising_geocoder_does_not_abort_batch():
    geocoder = FakeGeocoder(
        {"2 Main St": GeocodeResult(lat=1.0, lng=2.0)},
        raise_for={"1 Main St"},
    )
    rows = [job("A", full_address="1 Main St"), job("B", full_address="2 Main St")]

    result = run(rows, geocoder)

    assert result.rows[0].geocode_status == "FAILED"
    assert result.rows[1].lat == 1.0
    assert result.summary.success == 1
    assert result.summary.failed == 1


def test_progress_reported_for_every_row(fake_geocoder):
    progress = []
    rows = [job(str(i), full_address=f"{i} Elm St") for i in range(7)]

    run(rows, fake_geocoder, concurrency=3, on_progress=lambda done, total: progress.append((done, total)))

    assert progress == [(i, 7) for i in range(1, 8)]


def test_pool_never_exceeds_concurrency():
    class SlowGeocoder(Geocoder):
        def __init__(self):
            self.active = 0
            self.peak = 0

        async def geocode_detailed(self, address):
            self.active += 1
            self.peak = max(self.peak, self.active)
            await asyncio.sleep(0.01)
            self.active -= 1
            return GeocodeOutcome(address=address, status=GeocodeStatus.OK, result=GeocodeResult(lat=1, lng=1))

        def lookup_detailed(self, address):
            raise NotImplementedError

    geocoder = SlowGeocoder()
    rows = [job(str(i), full_address=f"{i} Elm St") for i in range(12)]

    result = run(rows, geocoder, concurrency=4)

    assert geocoder.peak <= 4
    assert result.summary.success == 12


def test_empty_input_returns_empty_result(fake_geocoder):
    result = run([], fake_geocoder)

    assert result.rows == []
    assert result.summary.attempted == 0


def test_rejected_token_leaves_rows_unmarked_for_a_later_run(store):
    class RejectingGeocoder(Geocoder):
        async def geocode_detailed(self, address):
            return GeocodeOutcome(address=address, status=GeocodeStatus.CONFIG_ERROR, message="malformed token")

        def lookup_detailed(self, address):
            raise AssertionError("sync path not used")

    result = run([job("A", full_address="1 Main St"), job("B", full_address="2 Main St")], RejectingGeocoder())

    assert [r.geocode_status for r in result.rows] == [None, None]
    assert result.summary.failed == 2

    store.upsert(result.rows)
    assert store.count_needing_geocode() == 2
