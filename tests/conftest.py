"""Shared pytest fixtures for offline pipeline tests."""

from __future__ import annotations

import os
from datetime import date
from typing import Any, Dict, Optional

import pytest

# Ensure placeholder keys exist so modules that read env on import succeed.
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test-maps-key")
os.environ.setdefault("GOOGLE_API_KEY", "test-google-key")
os.environ.setdefault("AMADEUS_API_KEY", "test-amadeus-key")
os.environ.setdefault("AMADEUS_API_SECRET", "test-amadeus-secret")

from workflows.state import CandidatePOI, Coordinate, TripPreferences  # noqa: E402


class FakeResponse:
    """Lightweight stand-in for httpx.Response used in patched requests."""

    def __init__(self, payload: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None):
        self._payload = payload
        self.status_code = status_code
        self.headers = headers or {}
        self.text = ""

    def json(self) -> Any:
        return self._payload


@pytest.fixture
def fake_response():
    """Factory that returns FakeResponse objects."""

    def _factory(payload: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> FakeResponse:
        return FakeResponse(payload, status_code=status_code, headers=headers)

    return _factory


@pytest.fixture
def preferences() -> TripPreferences:
    return TripPreferences(
        origin="Paris",
        destination="Barcelona",
        start_date=date(2025, 6, 10),
        duration_days=3,
        budget_level="moderate",
        group_size=2,
        group_type="couple",
        activities=["museum", "food"],
        pace="moderate",
    )


@pytest.fixture
def make_poi():
    """Factory for CandidatePOI with sensible Barcelona defaults."""

    def _factory(name: str, lat: Optional[float] = 41.3870, lng: Optional[float] = 2.1700, **kwargs: Any) -> CandidatePOI:
        fields: Dict[str, Any] = {
            "id": kwargs.pop("id", name.lower().replace(" ", "-")),
            "name": name,
            "category": kwargs.pop("category", "activity"),
            "city": kwargs.pop("city", "Barcelona"),
            "address": kwargs.pop("address", "Carrer de Mallorca 401, Barcelona"),
            "coord": Coordinate(lat=lat, lng=lng) if lat is not None and lng is not None else None,
            "source": kwargs.pop("source", "google_places"),
        }
        fields.update(kwargs)
        return CandidatePOI(**fields)

    return _factory


_ACTIVITIES = [
    ("Museu Picasso", 41.3852, 2.1809, ("museum",), 4.5, 41000),
    ("Barcelona Cathedral", 41.3839, 2.1762, ("church", "place_of_worship"), 4.6, 52000),
    ("Palau de la Musica Catalana", 41.3875, 2.1753, ("concert_hall",), 4.7, 30000),
    ("Santa Maria del Mar", 41.3836, 2.1820, ("church",), 4.7, 27000),
    ("Sagrada Familia", 41.4036, 2.1744, ("church", "tourist_attraction"), 4.8, 250000),
    ("Casa Mila", 41.3954, 2.1619, ("museum",), 4.6, 90000),
    ("Park Guell", 41.4145, 2.1527, ("park",), 4.5, 180000),
    ("Hospital de Sant Pau", 41.4115, 2.1744, ("historical_landmark",), 4.7, 20000),
    ("Casa Batllo", 41.3917, 2.1649, ("museum",), 4.7, 120000),
    ("Museu Nacional d'Art de Catalunya", 41.3686, 2.1535, ("museum", "art_gallery"), 4.7, 60000),
]

_RESTAURANTS = [
    ("Granja Viader", 41.3825, 2.1713, ("cafe", "breakfast_restaurant"), 4.5, 3200),
    ("Federal Cafe", 41.3755, 2.1628, ("cafe", "brunch_restaurant"), 4.4, 2800),
    ("Cal Pep", 41.3839, 2.1833, ("spanish_restaurant",), 4.4, 5100),
    ("El Xampanyet", 41.3847, 2.1812, ("tapas_restaurant",), 4.5, 6000),
    ("Disfrutar", 41.3875, 2.1528, ("fine_dining_restaurant",), 4.8, 2500),
    ("La Pepita", 41.3980, 2.1594, ("tapas_restaurant",), 4.6, 4000),
]

_LODGING = [
    ("Hotel Neri", 41.3831, 2.1751, 220.0, 4.6),
    ("Hostal Grau", 41.3829, 2.1683, 90.0, 4.3),
    ("Generator Barcelona", 41.3994, 2.1628, 60.0, 4.0),
    ("Hotel Casa Fuster", 41.3988, 2.1571, 250.0, 4.7),
]


@pytest.fixture
def barcelona_candidates(make_poi):
    """Realistic Barcelona activities, restaurants and lodging with street addresses."""
    activities = [
        make_poi(name, lat, lng, tags=tags, rating=rating, review_count=reviews,
                 estimated_cost=15.0, address=f"Carrer {name} {i + 1}, Barcelona")
        for i, (name, lat, lng, tags, rating, reviews) in enumerate(_ACTIVITIES)
    ]
    restaurants = [
        make_poi(name, lat, lng, category="restaurant", tags=tags, rating=rating, review_count=reviews,
                 estimated_cost=25.0, duration_minutes=75, address=f"Carrer {name} {i + 1}, Barcelona")
        for i, (name, lat, lng, tags, rating, reviews) in enumerate(_RESTAURANTS)
    ]
    lodging = [
        make_poi(name, lat, lng, category="lodging", estimated_cost=rate, rating=rating,
                 address=f"Carrer {name} {i + 1}, Barcelona")
        for i, (name, lat, lng, rate, rating) in enumerate(_LODGING)
    ]
    return {"activities": activities, "restaurants": restaurants, "lodging": lodging}
