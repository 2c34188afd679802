"""Address completeness checks for scheduled items.

Every item in a finished itinerary must point at a specific place: a bare
city name ("Barcelona") or a generic area ("city center") is rejected, a
street-level address ("Montcada 15-23, Barcelona") passes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

MIN_ADDRESS_LENGTH = 5

GENERIC_LOCATIONS = frozenset({
    "centre-ville",
    "centre ville",
    "city center",
    "city centre",
    "downtown",
    "centro",
    "centre",
    "center",
})

_SPLIT = re.compile(r"[\s,]+")
_TRAILING_NUMBER = re.compile(r"(\d+(?:-\d+)?)\s*$")
_LEADING_NUMBER = re.compile(r"^(\d+(?:-\d+)?)[\s,]+")


@dataclass(frozen=True)
class AddressCheck:
    valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class AddressComponents:
    street: str
    number: Optional[str] = None
    city: Optional[str] = None


def _is_generic(normalized: str, city: Optional[str]) -> bool:
    """True when the address is only generic area words, optionally followed by the city."""
    parts = [p.strip() for p in normalized.split(",") if p.strip()]
    city_key = (city or "").lower().strip()
    remaining = [p for p in parts if p != city_key]
    return bool(remaining) and all(p in GENERIC_LOCATIONS for p in remaining)


def validate_address(name: str, address: Optional[str], city: Optional[str] = None) -> AddressCheck:
    """Check that ``address`` is specific enough to find ``name`` on a map."""
    if not address or not address.strip():
        return AddressCheck(False, f'Activity "{name}" requires an exact address')

    if len(address.strip()) < MIN_ADDRESS_LENGTH:
        return AddressCheck(False, f'Activity "{name}" requires an exact address (too short)')

    normalized = address.lower().strip()

    if _is_generic(normalized, city):
        return AddressCheck(False, f'Activity "{name}" requires an exact address, not a generic location')

    if city and normalized == city.lower().strip():
        return AddressCheck(False, f'Activity "{name}" requires an exact address, not just the city name')

    words = [w for w in _SPLIT.split(normalized) if w]
    if len(words) == 1:
        return AddressCheck(False, f'Activity "{name}" requires an exact address with street name')

    return AddressCheck(True)


def is_valid_address(address: Optional[str], city: Optional[str] = None) -> bool:
    return validate_address("", address, city).valid


def extract_address_components(address: Optional[str]) -> AddressComponents:
    """Split "Street 12, City" (or "12 Street, City") into its parts."""
    if not address or not address.strip():
        return AddressComponents(street="")

    parts = [p.strip() for p in address.strip().split(",")]
    street_part = parts[0]
    city = ", ".join(parts[1:]) if len(parts) >= 2 else None

    match = _TRAILING_NUMBER.search(street_part)
    if match:
        return AddressComponents(street=street_part[: match.start()].strip(), number=match.group(1), city=city)

    match = _LEADING_NUMBER.match(street_part)
    if match:
        return AddressComponents(street=street_part[match.end():].strip(), number=match.group(1), city=city)

    return AddressComponents(street=street_part, city=city)


def format_with_address(name: str, address: Optional[str]) -> str:
    if not address or not address.strip():
        return name
    return f"{name} ({address})"
