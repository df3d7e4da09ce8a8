"""
- Models: Data structures (GeocodeResult, GeocodeOutcome, AddressParts, ...)
- Base classes: Abstract interfaces
- Normalizers: Address canonicalization and full-address parsing
- Geocoders: Coordinate lookup implementations
- Throttling: Rate limiting for the sequential run
- Storage: Job row store
- Batch: Concurrency-bounded batch geocoding
- Runner: Sequential geocode run over stored rows
"""

from .models import (
    GeocodeStatus,
    RowGeocodeStatus,
    Confidence,
    AddressParts,
    GeocodeResult,
    GeocodeOutcome,
    BatchSummary,
    RunSummary,
    GeocodingConfig,
)

from .base import (
    Normalizer,
    Geocoder,
    JobStore,
    RateLimiter,
)

from .normalizers import (
    AddressNormalizer,
    FullAddressParser,
    STATE_TO_USPS,
    STREET_SUFFIXES,
    normalize_address,
    parse_full_address,
)

from .throttling import (
    IntervalGate,
    NoOpRateLimiter,
)

from .geocoders import (
    MapboxGeocoder,
    get_geocoder,
)

from .storage import (
    DuckDBJobStore,
)

from .batch import (
    BatchResult,
    geocode_batch,
)

from .runner import (
    GeocodeRunner,
)

__all__ = [
    # Models
    "GeocodeStatus",
    "RowGeocodeStatus",
    "Confidence",
    "AddressParts",
    "GeocodeResult",
    "GeocodeOutcome",
    "BatchSummary",
    "RunSummary",
    "GeocodingConfig",
    # Base classes
    "Normalizer",
    "Geocoder",
    "JobStore",
    "RateLimiter",
    # Normalizers
    "AddressNormalizer",
    "FullAddressParser",
    "STATE_TO_USPS",
    "STREET_SUFFIXES",
    "normalize_address",
    "parse_full_address",
    # Throttling
    "IntervalGate",
    "NoOpRateLimiter",
    # Geocoders
    "MapboxGeocoder",
    "get_geocoder",
    # Storage
    "DuckDBJobStore",
    # Batch
    "BatchResult",
    "geocode_batch",
    # Runner
    "GeocodeRunner",
]
