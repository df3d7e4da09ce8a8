"""
US address normalizers and the full-address parser.

Provides implementations for turning free-form, user-typed address text
into the canonical form sent to the geocoding provider, and for splitting
a single "full address" column into street/city/state/zip parts.
"""

import re
from typing import Dict, Mapping, Optional

from .base import Normalizer
from .models import AddressParts, Confidence

# Full state name to USPS code (50 states + DC)
STATE_TO_USPS: Mapping[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC",
}

# Longest names first so "West Virginia" wins over "Virginia"
_RE_STATE_NAME = re.compile(
    r"\b(?:"
    + "|".join(name.replace(" ", r"\s") for name in sorted(STATE_TO_USPS, key=len, reverse=True))
    + r")\b",
    re.I,
)

# Street types abbreviated in the canonical form.
# NOTE: North/South/East/West are deliberately absent: they are parts of
# names ("North Carolina", "East Broadway"), not only directions.
_STREET_TYPE_CANON: Dict[str, str] = {
    "STREET": "St",
    "AVENUE": "Ave",
    "BOULEVARD": "Blvd",
    "ROAD": "Rd",
    "DRIVE": "Dr",
}
_RE_STREET_TYPE = re.compile(r"\b(" + "|".join(_STREET_TYPE_CANON) + r")\b", re.I)

_RE_WHITESPACE = re.compile(r"\s+")
_RE_SPACE_BEFORE_COMMA = re.compile(r"\s+,")

# "IL 62704" or "IL 62704-1234" anchored at the end of the string
_RE_STATE_ZIP = re.compile(r"\b([A-Z]{2})\s+(\d{5}(?:-\d{4})?)\b\s*$")

# Suffixes used to split a comma-less "street city" remainder
STREET_SUFFIXES = (
    "St", "Street", "Ave", "Avenue", "Rd", "Road", "Dr", "Drive", "Ln", "Lane",
    "Blvd", "Boulevard", "Ct", "Court", "Pl", "Place", "Way", "Circle", "Cir",
    "Pkwy", "Parkway",
)
_RE_SUFFIX_SPLIT = re.compile(
    r"^(.+?\s+\b(?:" + "|".join(STREET_SUFFIXES) + r")\b)\s+(.+)$",
    re.I,
)


class AddressNormalizer(Normalizer):
    """
    Canonicalizes a US address string before lookup.

    Handles:
    - Whitespace cleanup (collapse, trim, no space before commas)
    - Full state names → USPS codes, whole words only
    - Street type abbreviations (Street → St, Avenue → Ave, ...)

    The transform is idempotent: normalizing a normalized string is a no-op.
    A city literally named after a state ("Washington Street" → "WA St")
    is a known, accepted false positive of whole-word state matching.
    """

    def normalize(self, value: str) -> str:
        """
        Normalize a single address.

        Args:
            value: Free-form address text

        Returns:
            Canonical address string ("" for empty input)
        """
        if not value:
            return ""

        t = self._clean_whitespace(str(value))
        t = _RE_STATE_NAME.sub(self._state_code, t)
        t = _RE_STREET_TYPE.sub(lambda m: _STREET_TYPE_CANON[m.group(1).upper()], t)

        # Replacements can leave doubled spaces behind
        return _RE_WHITESPACE.sub(" ", t).strip()

    @staticmethod
    def _clean_whitespace(text: str) -> str:
        t = _RE_WHITESPACE.sub(" ", text)
        t = _RE_SPACE_BEFORE_COMMA.sub(",", t)
        return t.strip()

    @staticmethod
    def _state_code(match: re.Match) -> str:
        name = _RE_WHITESPACE.sub(" ", match.group(0)).lower()
        return STATE_TO_USPS[name]


class FullAddressParser:
    """
    Splits a single full-address string into street, city, state and zip.

    Only a ``STATE ZIP`` pair anchored at the end of the string is trusted.
    The remainder is split on commas (last segment is the city), or, with
    no commas, right after the first street suffix.
    """

    def parse(self, value: Optional[str]) -> AddressParts:
        """
        Parse a full address.

        Args:
            value: Full address text, e.g. "123 Main St, Springfield, IL 62704"

        Returns:
            AddressParts with a confidence of high (street and city),
            medium (street only) or low (anything else)
        """
        if not value or not isinstance(value, str):
            return AddressParts(confidence=Confidence.LOW)

        address = value.strip()
        match = _RE_STATE_ZIP.search(address)
        if not match:
            # No state/ZIP: keep the text so nothing is silently dropped
            return AddressParts(street=address or None, confidence=Confidence.LOW)

        state, zip_code = match.group(1), match.group(2)
        remaining = address[: match.start()].strip()
        segments = [s.strip() for s in remaining.split(",") if s.strip()]

        street, city = "", ""
        if len(segments) >= 2:
            street = ", ".join(segments[:-1])
            city = segments[-1]
        elif len(segments) == 1:
            street, city = self._split_on_suffix(segments[0])

        return AddressParts(
            street=street or None,
            city=city or None,
            state=state,
            zip=zip_code,
            confidence=self._confidence(street, city),
        )

    @staticmethod
    def _split_on_suffix(segment: str) -> tuple[str, str]:
        # Leftmost suffix wins ("Park Ridge Court Drive" splits after "Court")
        match = _RE_SUFFIX_SPLIT.match(segment)
        if match:
            return match.group(1).strip(), match.group(2).strip()
        return segment, ""

    @staticmethod
    def _confidence(street: str, city: str) -> Confidence:
        if street and city:
            return Confidence.HIGH
        if street:
            return Confidence.MEDIUM
        return Confidence.LOW


_normalizer = AddressNormalizer()
_parser = FullAddressParser()


def normalize_address(raw: Optional[str]) -> str:
    """Module-level shortcut for AddressNormalizer().normalize()."""
    return _normalizer.normalize(raw or "")


def parse_full_address(raw: Optional[str]) -> AddressParts:
    """Module-level shortcut for FullAddressParser().parse()."""
    return _parser.parse(raw)
