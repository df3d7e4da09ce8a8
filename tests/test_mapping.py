from __future__ import annotations

import pytest

from jobmap.ingestion import apply_mapping, is_full_address_header, missing_mappings, suggest_mapping


def test_exact_headers_map_case_insensitively():
    headers = ["Name", "Service_Date", "PRICE", "Street", "City", "State", "Zip"]

    mapping = suggest_mapping(headers)

    assert mapping["name"] == "Name"
    assert mapping["service_date"] == "Service_Date"
    assert mapping["price"] == "PRICE"
    assert mapping["zip"] == "Zip"


def test_synonyms_fill_unmatched_fields():
    headers = ["Customer Name", "Appointment Date", "Total", "Location", "Postal_Code"]

    mapping = suggest_mapping(headers)

    assert mapping["name"] == "Customer Name"
    assert mapping["service_date"] == "Appointment Date"
    assert mapping["price"] == "Total"
    assert mapping["full_address"] == "Location"
    assert mapping["zip"] == "Postal_Code"


def test_missing_mappings_accepts_full_address_alone():
    mapping = {"name": "n", "service_date": "d", "price": "p", "full_address": "a"}

    assert missing_mappings(mapping) == []


def test_missing_mappings_accepts_all_parts():
    mapping = {"name": "n", "service_date": "d", "price": "p", "street": "s", "city": "c", "state": "st", "zip": "z"}

    assert missing_mappings(mapping) == []


def test_missing_mappings_lists_absent_fields():
    mapping = {"name": "n", "street": "s"}

    assert missing_mappings(mapping) == ["service_date", "price", "city", "state", "zip", "full_address"]


@pytest.mark.parametrize(
    "header, expected",
    [
        ("Full Address", True),
        ("street_address", True),
        ("ADDR", True),
        ("Location", True),
        ("City", False),
        ("", False),
    ],
)
def test_is_full_address_header(header, expected):
    assert is_full_address_header(header) is expected


def test_apply_mapping_falls_back_to_same_named_keys():
    row = {"Customer": "Bob", "price": "10", "extra": "ignored"}

    out = apply_mapping(row, {"name": "Customer"})

    assert out == {"name": "Bob", "price": "10"}
