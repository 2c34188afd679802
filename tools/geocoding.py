# tools/geocoding.py
"""City-name normalization and reverse geocoding.

Strategy for :meth:`CityNormalizer.normalize`:

1. Local dictionary of common cities and their foreign spellings (fast path,
   no network).
2. Nominatim (OpenStreetMap) search for anything else, cached per process.
3. The cleaned input itself, title-cased, when both miss.
"""
from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

import config
from workflows.state import Coordinate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedCity:
    display_name: str
    original: str
    coord: Optional[Coordinate] = None
    confidence: str = "high"


# display name -> (lat, lng, spellings)
_CITY_DATA: Dict[str, Any] = {
    "London": (51.5074, -0.1278, ["london", "londres", "londra"]),
    "Paris": (48.8566, 2.3522, ["paris", "parigi"]),
    "Barcelona": (41.3851, 2.1734, ["barcelona", "barcelone", "barcellona"]),
    "Rome": (41.9028, 12.4964, ["rome", "roma", "rom"]),
    "Amsterdam": (52.3676, 4.9041, ["amsterdam"]),
    "Berlin": (52.5200, 13.4050, ["berlin", "berlino"]),
    "Madrid": (40.4168, -3.7038, ["madrid"]),
    "Lisbon": (38.7223, -9.1393, ["lisbon", "lisbonne", "lisboa", "lissabon"]),
    "Milan": (45.4642, 9.1900, ["milan", "milano", "mailand"]),
    "Florence": (43.7696, 11.2558, ["florence", "firenze", "florenz", "florencia"]),
    "Venice": (45.4408, 12.3155, ["venice", "venise", "venezia", "venedig", "venecia"]),
    "Prague": (50.0755, 14.4378, ["prague", "praha", "prag", "praga"]),
    "Vienna": (48.2082, 16.3738, ["vienna", "vienne", "wien", "viena"]),
    "Brussels": (50.8503, 4.3517, ["brussels", "bruxelles", "brussel", "bruselas"]),
    "Munich": (48.1351, 11.5820, ["munich", "munchen", "monaco di baviera"]),
    "Athens": (37.9838, 23.7275, ["athens", "athenes", "atene", "atenas", "athen"]),
    "Seville": (37.3891, -5.9845, ["seville", "sevilla", "siviglia"]),
    "Naples": (40.8518, 14.2681, ["naples", "napoli", "neapel"]),
    "Lyon": (45.7640, 4.8357, ["lyon", "lione"]),
    "Nice": (43.7102, 7.2620, ["nice", "nizza", "niza"]),
    "Marseille": (43.2965, 5.3698, ["marseille", "marsella", "marsiglia"]),
    "Copenhagen": (55.6761, 12.5683, ["copenhagen", "copenhague", "kobenhavn", "copenaghen"]),
    "New York": (40.7128, -74.0060, ["new york", "new york city", "nyc", "nueva york"]),
    "Tokyo": (35.6762, 139.6503, ["tokyo", "tokio"]),
    "Porto": (41.1579, -8.6291, ["porto", "oporto"]),
}


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.lower().replace("-", " ").split())


_CITY_INDEX: Dict[str, str] = {
    _fold(spelling): display
    for display, (_lat, _lng, spellings) in _CITY_DATA.items()
    for spelling in spellings
}


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in (429, 500, 502, 503, 504)
    return isinstance(exc, httpx.RequestError)


@retry(
    retry=retry_if_exception(_is_retryable),
    wait=wait_exponential(multiplier=0.6, max=3),
    stop=stop_after_attempt(3),
    reraise=True,
)
def _request(method: str, url: str, **kw) -> httpx.Response:
    with httpx.Client(timeout=kw.pop("timeout", 10)) as c:
        r = c.request(method, url, **kw)
        r.raise_for_status()
        return r


def _headers() -> Dict[str, str]:
    # Nominatim's usage policy requires an identifying User-Agent
    return {"User-Agent": config.GEOCODER_USER_AGENT, "Accept-Language": "en"}


def search_city(query: str) -> Optional[NormalizedCity]:
    """Look up a free-text city with Nominatim. Returns None when nothing matches."""
    r = _request(
        "GET",
        f"{config.NOMINATIM_URL}/search",
        params={"q": query, "format": "json", "limit": 1, "accept-language": "en", "addressdetails": 1},
        headers=_headers(),
    )
    results: List[Dict[str, Any]] = r.json() or []
    if not results:
        return None
    top = results[0]
    address = top.get("address") or {}
    display = (
        address.get("city")
        or address.get("town")
        or address.get("village")
        or (top.get("display_name") or "").split(",")[0].strip()
    )
    if not display:
        return None
    return NormalizedCity(
        display_name=display,
        original=query,
        coord=Coordinate(lat=float(top["lat"]), lng=float(top["lon"])),
        confidence="medium",
    )


def reverse_geocode(coord: Coordinate) -> Optional[str]:
    """Street-level address for a coordinate, or None."""
    r = _request(
        "GET",
        f"{config.NOMINATIM_URL}/reverse",
        params={"lat": coord.lat, "lon": coord.lng, "format": "json", "zoom": 18, "addressdetails": 1},
        headers=_headers(),
    )
    data = r.json() or {}
    address = data.get("address") or {}
    road = address.get("road") or address.get("pedestrian") or address.get("square")
    if not road:
        return None
    number = address.get("house_number")
    city = address.get("city") or address.get("town") or address.get("village")
    street = f"{road} {number}" if number else road
    return ", ".join(part for part in (street, city) if part)


class CityNormalizer:
    """Raw user text -> canonical city display name. Never raises."""

    def __init__(self, *, use_remote: bool = True) -> None:
        self.use_remote = use_remote
        self._cache: Dict[str, NormalizedCity] = {}

    def lookup(self, raw: Optional[str]) -> Optional[NormalizedCity]:
        cleaned = " ".join((raw or "").split())
        if not cleaned:
            return None
        key = _fold(cleaned)

        display = _CITY_INDEX.get(key)
        if display:
            lat, lng, _ = _CITY_DATA[display]
            return NormalizedCity(display, cleaned, Coordinate(lat=lat, lng=lng), "high")

        if key in self._cache:
            return self._cache[key]

        found: Optional[NormalizedCity] = None
        if self.use_remote:
            try:
                found = search_city(cleaned)
            except (httpx.HTTPError, ValueError, KeyError) as exc:
                logger.warning(f"City lookup failed for '{cleaned}': {exc}")
        if found is None:
            found = NormalizedCity(cleaned.title(), cleaned, None, "low")
        self._cache[key] = found
        return found

    def normalize(self, raw: Optional[str]) -> str:
        found = self.lookup(raw)
        return found.display_name if found else ""

    def coordinates(self, raw: Optional[str]) -> Optional[Coordinate]:
        found = self.lookup(raw)
        return found.coord if found else None
