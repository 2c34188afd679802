"""Tests for address completeness checks."""

from __future__ import annotations

import pytest

from workflows.address import (
    extract_address_components,
    format_with_address,
    is_valid_address,
    validate_address,
)


def test_city_only_address_requires_exact_address():
    check = validate_address("Picasso Museum", "Barcelona", "Barcelona")
    assert not check.valid
    assert "exact" in check.error
    assert "city name" in check.error


def test_street_and_number_pass():
    assert validate_address("Picasso Museum", "Montcada 15-23, Barcelona", "Barcelona").valid


@pytest.mark.parametrize(
    "address",
    [None, "", "   ", "Rue", "city center", "Centre-ville, Barcelona", "downtown"],
)
def test_incomplete_addresses_fail(address):
    check = validate_address("X", address, "Barcelona")
    assert not check.valid
    assert "exact address" in check.error


def test_named_place_containing_generic_word_passes():
    assert is_valid_address("Place Georges-Pompidou, Centre Pompidou, Paris", "Paris")


def test_single_word_needs_street_name():
    check = validate_address("X", "Eixample", None)
    assert check.error.endswith("with street name")


@pytest.mark.parametrize(
    "address, street, number, city",
    [
        ("Montcada 15-23, Barcelona", "Montcada", "15-23", "Barcelona"),
        ("5 Avenue Anatole France, Paris", "Avenue Anatole France", "5", "Paris"),
        ("Carrer de Mallorca, Barcelona, Spain", "Carrer de Mallorca", None, "Barcelona, Spain"),
    ],
)
def test_extract_address_components(address, street, number, city):
    parts = extract_address_components(address)
    assert (parts.street, parts.number, parts.city) == (street, number, city)


def test_format_with_address():
    assert format_with_address("Louvre", "Rue de Rivoli, Paris") == "Louvre (Rue de Rivoli, Paris)"
    assert format_with_address("Louvre", None) == "Louvre"
