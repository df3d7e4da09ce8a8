"""Column mapping between user spreadsheet headers and the job schema."""

import re
from typing import Any, Iterable, Mapping

# Schema fields a spreadsheet can map onto
SCHEMA_FIELDS = [
    "name",
    "service_date",
    "price",
    "street",
    "city",
    "state",
    "zip",
    "full_address",
]

OPTIONAL_FIELDS = ["service_type", "lead_source", "lat", "lng", "needs_geocode"]

BASE_REQUIRED = ["name", "service_date", "price"]
ADDRESS_PARTS = ["street", "city", "state", "zip"]

# Header synonyms tried, in order, when no header matches a field exactly
HEADER_SUGGESTIONS: dict[str, list[str]] = {
    "name": ["name", "customer_name", "client_name", "full_name", "customer", "client"],
    "service_date": ["service_date", "date", "service_dt", "appointment_date", "visit_date", "created_date"],
    "price": ["price", "amount", "cost", "total", "fee", "charge", "payment"],
    "street": ["street", "address", "street_address", "addr1", "address1", "street1", "full_address"],
    "city": ["city", "town", "municipality"],
    "state": ["state", "province", "region", "st"],
    "zip": ["zip", "zipcode", "postal_code", "postcode", "zip_code"],
    "full_address": [
        "full_address", "address", "addr", "street_address", "location",
        "address_1", "full_addr", "complete_address",
    ],
}

FULL_ADDRESS_VARIANTS = ["fulladdress", "address", "addr", "streetaddress", "location", "address1"]


def is_full_address_header(header: str) -> bool:
    """True when a header looks like a single full-address column."""
    normalized = re.sub(r"[\s_-]", "", str(header).lower())
    if not normalized:
        return False
    return any(v in normalized or normalized in v for v in FULL_ADDRESS_VARIANTS)


def suggest_mapping(headers: Iterable[str]) -> dict[str, str]:
    """
    Guess which spreadsheet header feeds each schema field.

    An exact (case-insensitive) header match wins. Otherwise the first synonym
    that is a substring of a header, or contains one, is used.

    Returns:
        {schema_field: header} for the fields that could be matched
    """
    headers = [str(h) for h in headers]
    mapping: dict[str, str] = {}
    for field in SCHEMA_FIELDS:
        exact = next((h for h in headers if h.lower() == field.lower()), None)
        if exact:
            mapping[field] = exact
            continue
        for suggestion in HEADER_SUGGESTIONS.get(field, []):
            s = suggestion.lower()
            match = next((h for h in headers if h and (s in h.lower() or h.lower() in s)), None)
            if match:
                mapping[field] = match
                break
    return mapping


def missing_mappings(mapping: Mapping[str, str]) -> list[str]:
    """
    Required schema fields that are still unmapped.

    Either a full address or all four address parts satisfy the address
    requirement.
    """
    has_full = bool(mapping.get("full_address"))
    has_parts = all(mapping.get(p) for p in ADDRESS_PARTS)

    required = list(BASE_REQUIRED)
    if has_full:
        required.append("full_address")
    elif has_parts:
        required.extend(ADDRESS_PARTS)
    else:
        required.extend(ADDRESS_PARTS + ["full_address"])

    missing = []
    for field in required:
        if field in ADDRESS_PARTS and has_full:
            continue
        if field == "full_address" and (has_full or has_parts):
            continue
        if not mapping.get(field):
            missing.append(field)
    return missing


def apply_mapping(row: Mapping[str, Any], mapping: Mapping[str, str] | None = None) -> dict[str, Any]:
    """
    Project a raw spreadsheet row onto the schema fields.

    Fields without a mapping fall back to a raw key of the same name.
    """
    mapping = mapping or {}
    out: dict[str, Any] = {}
    for field in SCHEMA_FIELDS + OPTIONAL_FIELDS:
        source = mapping.get(field)
        if source and source in row:
            out[field] = row[source]
        elif field in row:
            out[field] = row[field]
    return out
