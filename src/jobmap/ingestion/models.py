from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from hashlib import sha256
from typing import Any, TYPE_CHECKING

from pydantic import BaseModel, Field

from ..utils.errors import DataValidationError

if TYPE_CHECKING:
    from ..geocoding.models import BatchSummary

ADDRESS_PARTS = ("street", "city", "state", "zip")


class JobRow(BaseModel):
    """One job record, before or after persistence."""
    id:             str | None = None
    name:           str = Field(min_length=1)
    service_date:   date
    price:          float = Field(ge=0)
    service_type:   str | None = None
    lead_source:    str | None = None
    street:         str | None = None
    city:           str | None = None
    state:          str | None = None
    zip:            str | None = None
    full_address:   str | None = None
    lat:            float | None = None
    lng:            float | None = None
    needs_geocode:  bool = False
    geocode_status: str | None = None

    @property
    def has_coordinates(self) -> bool:
        """Usable lat/lng already present (the geocoder never re-spends quota on these)."""
        if self.lat is None or self.lng is None:
            return False
        if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
            return False
        return -90 <= self.lat <= 90 and -180 <= self.lng <= 180

    def parts_address(self) -> str:
        parts = [str(getattr(self, p) or "").strip() for p in ADDRESS_PARTS]
        return ", ".join(p for p in parts if p)

    def geocode_address(self) -> str:
        """Address sent to the geocoder: the full address if given, else the joined parts."""
        if self.full_address and self.full_address.strip():
            return self.full_address.strip()
        return self.parts_address()

    @property
    def fingerprint(self) -> str:
        """Duplicate key for the row store: same customer, day, amount and address."""
        address = (self.full_address or self.parts_address()).strip().lower()
        key = "|".join([
            self.name.strip().lower(),
            self.service_date.isoformat(),
            f"{self.price:.2f}",
            " ".join(address.split()),
        ])
        return f"job_{sha256(key.encode()).hexdigest()[:16]}"

    def to_record(self) -> dict[str, Any]:
        """JSON-ready dict with the date as YYYY-MM-DD."""
        return self.model_dump(mode="json")


@dataclass
class RowValidation:
    """Outcome of validating one raw row: ``data`` when valid, ``error`` otherwise."""
    valid: bool
    data: JobRow | None = None
    error: str | None = None


@dataclass
class ValidationReport:
    rows: list[JobRow] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    total: int = 0


@dataclass
class ImportReport:
    """What an import did: counts, per-row errors and the geocoding pass, if any."""
    total: int = 0
    inserted: int = 0
    skipped: int = 0
    duplicates: int = 0
    truncated: int = 0
    errors: list[str] = field(default_factory=list)
    geocode: BatchSummary | None = None

    def raise_for_errors(self, source: str = "import") -> None:
        if self.errors:
            raise DataValidationError(source, self.errors)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "total": self.total,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "duplicates": self.duplicates,
            "errors": list(self.errors),
        }
        if self.truncated:
            data["truncated"] = self.truncated
        if self.geocode is not None:
            data["geocode"] = self.geocode.to_dict()
        return data
