# tools/attractions.py
"""Activity candidates from Google Places API (New) v1 - Text Search."""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

import config
from workflows.state import CandidatePOI, Coordinate

logger = logging.getLogger(__name__)

BASE = "https://places.googleapis.com/v1"

PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}

# Rough ticket price per person by price level
_ACTIVITY_COST_BY_LEVEL = {0: 0.0, 1: 10.0, 2: 20.0, 3: 35.0, 4: 60.0}

# Typical visit length by place type, in minutes
_DURATION_BY_TYPE = {
    "museum": 150,
    "art_gallery": 120,
    "amusement_park": 240,
    "zoo": 180,
    "aquarium": 120,
    "park": 90,
    "church": 60,
    "place_of_worship": 60,
    "tourist_attraction": 90,
    "historical_landmark": 75,
    "market": 75,
}

# --- single request; ResearchAgent owns the retries ---
def _request(method: str, url: str, **kw) -> httpx.Response:
    with httpx.Client(timeout=kw.pop("timeout", 20)) as c:
        r = c.request(method, url, **kw)
        r.raise_for_status()
        return r


def parse_price_level(value: Any) -> Optional[int]:
    """Places v1 returns enum strings, the classic API returns 0..4 ints."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return PRICE_LEVELS.get(str(value))


def _coord(loc: Dict[str, Any]) -> Optional[Coordinate]:
    lat, lng = loc.get("latitude"), loc.get("longitude")
    if lat is None or lng is None:
        return None
    return Coordinate(lat=lat, lng=lng)


def _build_query(city: str, tags: Iterable[str]) -> str:
    tags = [t for t in tags if t]
    if tags:
        return f"top {' '.join(tags[:3])} attractions in {city}"
    return f"top tourist attractions in {city}"


def search_attractions(
    city: str,
    tags: Iterable[str] = (),
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius_m: int = 30000,
    limit: int = 20,
) -> List[CandidatePOI]:
    """
    Provider: Google Places API (Text Search v1).
    Returns activity candidates located in ``city``.
    Environment: GOOGLE_MAPS_API_KEY
    """
    api_key = config.get_google_maps_api_key()
    if not api_key:
        raise ValueError("Missing GOOGLE_MAPS_API_KEY.")
    headers = {
        "X-Goog-Api-Key": api_key,
        # Request only the fields we use (field mask is required for v1)
        "X-Goog-FieldMask": ",".join([
            "places.id",
            "places.displayName",
            "places.formattedAddress",
            "places.location",
            "places.primaryType",
            "places.types",
            "places.rating",
            "places.userRatingCount",
            "places.priceLevel",
            "places.businessStatus",
        ]),
        "Content-Type": "application/json",
    }
    payload: Dict[str, Any] = {"textQuery": _build_query(city, tags), "pageSize": min(limit, 20)}
    if lat is not None and lng is not None:
        payload["locationBias"] = {
            "circle": {"center": {"latitude": lat, "longitude": lng}, "radius": radius_m}
        }

    r = _request("POST", f"{BASE}/places:searchText", headers=headers, json=payload)
    data = r.json()
    out: List[CandidatePOI] = []
    for p in data.get("places", [])[:limit]:
        name = (p.get("displayName") or {}).get("text")
        if not name or p.get("businessStatus") in ("CLOSED_PERMANENTLY", "CLOSED_TEMPORARILY"):
            continue
        primary = p.get("primaryType")
        types = [t for t in ([primary] + list(p.get("types") or [])) if t]
        level = parse_price_level(p.get("priceLevel"))
        out.append(CandidatePOI(
            id=p.get("id"),
            source="google_places",
            name=name,
            category="activity",
            city=city,
            address=p.get("formattedAddress"),
            coord=_coord(p.get("location") or {}),
            rating=p.get("rating"),
            review_count=p.get("userRatingCount"),
            price_level=level,
            estimated_cost=_ACTIVITY_COST_BY_LEVEL.get(level) if level is not None else None,
            tags=tuple(dict.fromkeys(types)),
            duration_minutes=_DURATION_BY_TYPE.get(primary or "", 90),
        ))
    logger.info(f"Places returned {len(out)} activities for {city}")
    return out
