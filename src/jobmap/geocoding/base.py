"""
Interfaces shared by the geocoding pipeline: address normalizers, geocoder
transports, the job store and the run pacing gate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional, List, TYPE_CHECKING

from .models import GeocodeOutcome, GeocodeResult

if TYPE_CHECKING:
    from ..ingestion.models import JobRow


class Normalizer(ABC):
    """Turns a free-form address into the canonical string sent to the provider."""

    @abstractmethod
    def normalize(self, value: str) -> str:
        """Return the canonical form of ``value``."""
        pass

    def normalize_batch(self, values: List[str]) -> List[str]:
        """Normalize each value in order."""
        return [self.normalize(v) for v in values]


class Geocoder(ABC):
    """
    Abstract base for geocoders.

    Geocoders turn a canonical address string into coordinates. Neither
    transport may raise: every failure is reported through the outcome's
    status and collapses to None in the plain variants.
    """

    @abstractmethod
    async def geocode_detailed(self, address: str) -> GeocodeOutcome:
        """
        Geocode one address without blocking the event loop.

        Args:
            address: Canonical address string

        Returns:
            GeocodeOutcome with status and, on success, the result
        """
        pass

    @abstractmethod
    def lookup_detailed(self, address: str) -> GeocodeOutcome:
        """
        Geocode one address synchronously.

        Args:
            address: Canonical address string

        Returns:
            GeocodeOutcome with status and, on success, the result
        """
        pass

    async def geocode_once(self, address: str) -> Optional[GeocodeResult]:
        """Asynchronous lookup returning only the result, or None on any failure."""
        outcome = await self.geocode_detailed(address)
        return outcome.result if outcome.is_success() else None

    def lookup(self, address: str) -> Optional[GeocodeResult]:
        """Synchronous lookup returning only the result, or None on any failure."""
        outcome = self.lookup_detailed(address)
        return outcome.result if outcome.is_success() else None

    async def aclose(self) -> None:
        """Release async transport resources held for the running loop."""
        pass


class JobStore(ABC):
    """
    Abstract base for the job row store.

    The core only needs to store validated rows (skipping duplicates),
    query them back for reporting, and update coordinates after a
    geocode run.
    """

    @abstractmethod
    def upsert(self, records: List["JobRow"], conflict_key: str = "fingerprint") -> List["JobRow"]:
        """Store records, silently skipping duplicates. Returns only the newly inserted rows."""
        pass

    @abstractmethod
    def select(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        min_price: Optional[float] = None,
    ) -> List["JobRow"]:
        """Return stored rows matching the filters."""
        pass

    @abstractmethod
    def select_needing_geocode(self, limit: int, include_failed: bool = False) -> List["JobRow"]:
        """Return up to ``limit`` rows without coordinates or flagged for geocoding."""
        pass

    @abstractmethod
    def count_needing_geocode(self, include_failed: bool = False) -> int:
        """Count rows still waiting for coordinates."""
        pass

    @abstractmethod
    def update_geocode(self, job_id: str, lat: float, lng: float, zip_code: Optional[str]) -> None:
        """Store coordinates for one row and clear its geocode flag."""
        pass

    @abstractmethod
    def mark_geocode_failed(self, job_id: str) -> None:
        """Record that a run could not resolve this row."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close connections/cleanup resources."""
        pass


class RateLimiter(ABC):
    """Paces provider lookups made one after another."""

    @abstractmethod
    def wait(self) -> None:
        """Block until the next lookup may go out."""
        pass

    @abstractmethod
    def acquire(self, count: int = 1) -> None:
        """Reserve ``count`` consecutive lookup slots, blocking as needed."""
        pass
