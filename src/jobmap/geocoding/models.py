"""
Core data models for address parsing and geocoding operations.

These immutable, frozen dataclasses serve as the contract between
the normalizer, the geocode client, the batch geocoder and the
sequential run.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Optional
from enum import StrEnum

from ..settings import settings


class GeocodeStatus(StrEnum):
    """Status of a single geocode attempt."""
    OK = "ok"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    API_ERROR = "api_error"
    CONFIG_ERROR = "config_error"
    EXCEPTION = "exception"


class RowGeocodeStatus(StrEnum):
    """Geocode state stored on a job row, shared by the batch and the run."""
    OK = "OK"
    FAILED = "FAILED"

    @classmethod
    def for_outcome(cls, status: GeocodeStatus) -> Optional[str]:
        """
        Stored value for an attempt's status.

        A rejected token says nothing about the row, so it stays unmarked
        and a later run with a working token retries it.
        """
        if status == GeocodeStatus.OK:
            return cls.OK.value
        if status == GeocodeStatus.CONFIG_ERROR:
            return None
        return cls.FAILED.value


class Confidence(StrEnum):
    """Parser's self-assessed reliability of a full-address split."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class AddressParts:
    """
    Structured parts recovered from a free-form address.

    Unparseable input still keeps the original text as ``street`` so
    nothing the user typed is lost.
    """
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    confidence: Confidence = Confidence.LOW

    def is_complete(self) -> bool:
        """True when all four parts were recovered."""
        return all([self.street, self.city, self.state, self.zip])

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["confidence"] = self.confidence.value
        return data


@dataclass(frozen=True)
class GeocodeResult:
    """
    Coordinates for one address.

    ``zip`` is filled opportunistically from the provider response and
    may be absent.
    """
    lat: float
    lng: float
    zip: Optional[str] = None

    def is_valid(self) -> bool:
        """Check that both coordinates are within valid geographic ranges."""
        try:
            return -90 <= self.lat <= 90 and -180 <= self.lng <= 180
        except (TypeError, ValueError):
            return False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"lat": self.lat, "lng": self.lng}
        if self.zip:
            data["zip"] = self.zip
        return data


@dataclass(frozen=True)
class GeocodeOutcome:
    """
    A geocode attempt together with the reason it ended the way it did.

    ``result`` is only set when ``status`` is OK. The status keeps
    configuration problems distinguishable from a plain "no match".
    """
    address: str
    status: GeocodeStatus
    result: Optional[GeocodeResult] = None
    message: str = ""
    http_status: Optional[int] = None

    def is_success(self) -> bool:
        return self.status == GeocodeStatus.OK and self.result is not None


@dataclass
class BatchSummary:
    """Counters for one pass of the batch geocoder."""
    attempted: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    statuses: dict[str, int] = field(default_factory=dict)

    def record(self, status: GeocodeStatus) -> None:
        self.attempted += 1
        if status == GeocodeStatus.OK:
            self.success += 1
        else:
            self.failed += 1
        self.statuses[status.value] = self.statuses.get(status.value, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "success": self.success,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass
class RunSummary:
    """Result of one sequential server-side geocode run."""
    attempted: int = 0
    success: int = 0
    failed: int = 0
    remaining: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class GeocodingConfig:
    """Configuration for the geocoding pipeline."""
    # API settings
    access_token: str = ""
    base_url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places"
    timeout: float = 10.0

    # Batch worker pool
    concurrency: int = 5
    pacing_s: float = 0.12

    # Sequential run
    run_pacing_s: float = 0.1
    run_default_limit: int = 50
    run_max_limit: int = 500

    # Markers left behind by copied example env files
    _PLACEHOLDER_MARKERS = ("your_", "placeholder")

    @classmethod
    def from_settings(cls, **overrides: Any) -> "GeocodingConfig":
        """Create a config from the process settings with optional overrides."""
        values: dict[str, Any] = {
            "access_token": settings.mapbox_token.strip(),
            "base_url": settings.mapbox_base_url,
            "timeout": settings.geocode_timeout,
            "concurrency": settings.geocode_concurrency,
            "pacing_s": settings.geocode_pacing_s,
            "run_pacing_s": settings.run_pacing_s,
            "run_default_limit": settings.run_default_limit,
            "run_max_limit": settings.run_max_limit,
        }
        values.update(overrides)
        return cls(**values)

    def token_problem(self) -> Optional[str]:
        """
        Describe why the token is unusable for a lookup, or None if it is fine.

        Public provider tokens start with ``pk.``; anything else is rejected
        before a request is made.
        """
        token = (self.access_token or "").strip()
        if not token:
            return "MAPBOX_TOKEN is missing"
        if not token.startswith("pk."):
            return "MAPBOX_TOKEN is malformed (expected a 'pk.' token)"
        return None

    def is_configured(self) -> bool:
        """
        Check the token before a whole run starts.

        Looser than ``token_problem``: it only rejects empty tokens and
        values still carrying template placeholders.
        """
        token = (self.access_token or "").strip()
        if not token:
            return False
        return not any(marker in token for marker in self._PLACEHOLDER_MARKERS)

    def clamp_limit(self, limit: Optional[int]) -> int:
        """Clamp a requested run size into [1, run_max_limit]."""
        requested = self.run_default_limit if limit is None else int(limit)
        return max(1, min(requested, self.run_max_limit))
