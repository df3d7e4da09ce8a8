from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


from jobmap.geocoding import DuckDBJobStore, GeocodingConfig
from jobmap.geocoding.base import Geocoder
from jobmap.geocoding.models import GeocodeOutcome, GeocodeResult, GeocodeStatus


class FakeGeocoder(Geocoder):
    """Answers from a fixed {address: GeocodeResult} table and records every call."""

    def __init__(self, results=None, raise_for=()):
        self.results = dict(results or {})
        self.raise_for = set(raise_for)
        self.calls: list[str] = []
        self.closed = 0

    def _outcome(self, address: str) -> GeocodeOutcome:
        self.calls.append(address)
        if address in self.raise_for:
            raise RuntimeError(f"boom: {address}")
        result = self.results.get(address)
        if result is None:
            return GeocodeOutcome(address=address, status=GeocodeStatus.NOT_FOUND)
        return GeocodeOutcome(address=address, status=GeocodeStatus.OK, result=result)

    async def geocode_detailed(self, address: str) -> GeocodeOutcome:
        return self._outcome(address)

    def lookup_detailed(self, address: str) -> GeocodeOutcome:
        return self._outcome(address)

    async def aclose(self) -> None:
        self.closed += 1


@pytest.fixture
def fake_geocoder():
    return FakeGeocoder({
        "1 Main St, Springfield, IL 62704": GeocodeResult(lat=39.78, lng=-89.65, zip="62704"),
        "2 Main St, Springfield, IL 62704": GeocodeResult(lat=39.79, lng=-89.66),
    })


@pytest.fixture
def store(tmp_path):
    s = DuckDBJobStore(tmp_path / "jobs.duckdb")
    yield s
    s.close()


@pytest.fixture
def config():
    return GeocodingConfig(
        access_token="pk.test-token",
        base_url="https://geo.test/geocoding/v5/mapbox.places",
        timeout=1.0,
        run_pacing_s=0,
    )
