"""
Row validation and coercion for imported jobs.

Each raw row is checked on its own: a bad row yields a row-numbered error
message and is left out, and never stops the rows after it.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

import pandas as pd
from pydantic import ValidationError

from ..geocoding.models import Confidence
from ..geocoding.normalizers import parse_full_address
from .mapping import apply_mapping
from .models import ADDRESS_PARTS, JobRow, RowValidation, ValidationReport

logger = logging.getLogger(__name__)

_TRUTHY = {"true", "t", "yes", "y", "1"}


def _blank(value: Any) -> bool:
    """None, NaN or whitespace-only text."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _text(value: Any) -> Optional[str]:
    if _blank(value):
        return None
    return str(value).strip()


def _truthy(value: Any) -> bool:
    if _blank(value):
        return False
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def parse_price(value: Any) -> Optional[float]:
    """Numeric or currency text (``"$1,250.00"``) to a finite float, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "").strip()
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if math.isfinite(price) else None


def parse_service_date(value: Any) -> Optional[date]:
    """Date objects or any text pandas can read as a date, else None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = pd.to_datetime(str(value).strip(), errors="coerce")
    except (TypeError, ValueError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.date()


def _coordinate(value: Any) -> Optional[float]:
    if _blank(value) or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def validate_row(
    raw: Mapping[str, Any],
    column_mapping: Optional[Mapping[str, str]] = None,
    index: int = 0,
) -> RowValidation:
    """
    Validate and coerce one raw row into a JobRow.

    Args:
        raw: Row as read from the upload, keyed by source header
        column_mapping: {schema_field: source_header}; unmapped fields use the raw key
        index: 0-based position of the row; messages use 1-based numbers

    Returns:
        RowValidation with ``data`` set when valid, ``error`` otherwise
    """
    n = index + 1
    row = apply_mapping(raw, column_mapping)

    name = _text(row.get("name"))
    if not name:
        return RowValidation(valid=False, error=f"Row {n}: Name is required")

    if _blank(row.get("service_date")):
        return RowValidation(valid=False, error=f"Row {n}: Service date is required")

    if _blank(row.get("price")):
        return RowValidation(valid=False, error=f"Row {n}: Price is required")

    price = parse_price(row.get("price"))
    if price is None or price < 0:
        return RowValidation(valid=False, error=f"Row {n}: Invalid price format")

    service_date = parse_service_date(row.get("service_date"))
    if service_date is None:
        return RowValidation(valid=False, error=f"Row {n}: Invalid date format")

    parts = {p: _text(row.get(p)) for p in ADDRESS_PARTS}
    full_address = _text(row.get("full_address"))
    has_parts = all(parts.values())

    if not has_parts and not full_address:
        return RowValidation(
            valid=False,
            error=f"Row {n}: Must have either address components (street, city, state, zip) or full address",
        )

    needs_geocode = False
    if full_address and not has_parts:
        parsed = parse_full_address(full_address)
        parts = {
            "street": parsed.street,
            "city": parsed.city,
            "state": parsed.state,
            "zip": parsed.zip,
        }
        needs_geocode = parsed.confidence == Confidence.LOW or not all(parts.values())

    try:
        job = JobRow(
            name=name,
            service_date=service_date,
            price=price,
            service_type=_text(row.get("service_type")),
            lead_source=_text(row.get("lead_source")),
            full_address=full_address,
            lat=_coordinate(row.get("lat")),
            lng=_coordinate(row.get("lng")),
            needs_geocode=_truthy(row.get("needs_geocode")) or needs_geocode,
            **parts,
        )
    except ValidationError as e:
        return RowValidation(valid=False, error=f"Row {n}: Validation error - {e}")

    return RowValidation(valid=True, data=job)


def validate_rows(
    rows: Iterable[Mapping[str, Any]],
    column_mapping: Optional[Mapping[str, str]] = None,
) -> ValidationReport:
    """Validate every row independently, collecting valid rows and error messages."""
    report = ValidationReport()
    for i, raw in enumerate(rows):
        report.total += 1
        result = validate_row(raw, column_mapping, index=i)
        if result.valid and result.data is not None:
            report.rows.append(result.data)
        elif result.error:
            report.errors.append(result.error)

    if report.errors:
        logger.warning(f"{len(report.errors)} of {report.total} rows failed validation")
    return report
