# tools/dining.py
"""Restaurant search using Google Places API (New) v1 - Text Search."""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import httpx

import config
from tools.attractions import parse_price_level
from workflows.state import CandidatePOI, Coordinate

logger = logging.getLogger(__name__)

BASE = "https://places.googleapis.com/v1"

# Average spend per person for one meal, by price level
_MEAL_COST_BY_LEVEL = {0: 8.0, 1: 15.0, 2: 28.0, 3: 50.0, 4: 90.0}

# --- single request; ResearchAgent owns the retries ---
def _request(method: str, url: str, **kw) -> httpx.Response:
    with httpx.Client(timeout=kw.pop("timeout", 20)) as c:
        r = c.request(method, url, **kw)
        r.raise_for_status()
        return r


def search_restaurants(
    city: str,
    query: Optional[str] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius_m: int = 3000,
    limit: int = 20,
) -> List[CandidatePOI]:
    """
    Search for restaurants in ``city`` using Google Places API (New) v1 Text Search.

    Args:
        city: Destination city; every returned candidate is tagged with it
        query: Optional extra wording (e.g. "breakfast cafe", "vegetarian")
        lat, lng: Optional location bias center
        radius_m: Search radius in meters, only used if lat/lng provided
        limit: Max results (1-20)

    Docs: https://developers.google.com/maps/documentation/places/web-service/search-text
    """
    api_key = config.get_google_maps_api_key()
    if not api_key:
        raise ValueError("Missing GOOGLE_MAPS_API_KEY.")

    headers = {
        "X-Goog-Api-Key": api_key,
        "X-Goog-FieldMask": ",".join([
            "places.id",
            "places.displayName",
            "places.formattedAddress",
            "places.location",
            "places.rating",
            "places.userRatingCount",
            "places.priceLevel",
            "places.types",
        ]),
        "Content-Type": "application/json",
    }

    payload: Dict[str, Any] = {
        "textQuery": f"{query} in {city}" if query else f"restaurants in {city}",
        "includedType": "restaurant",
        "pageSize": min(limit, 20),
        "strictTypeFiltering": True,
        "rankPreference": "RELEVANCE",
    }
    if lat is not None and lng is not None:
        payload["locationBias"] = {
            "circle": {
                "center": {"latitude": lat, "longitude": lng},
                "radius": radius_m
            }
        }

    try:
        r = _request("POST", f"{BASE}/places:searchText", headers=headers, json=payload)
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 403:
            raise RuntimeError(f"403 Forbidden from Places API: {e.response.text[:200]}") from e
        raise

    data = r.json()
    out: List[CandidatePOI] = []
    for p in data.get("places", []):
        name = (p.get("displayName") or {}).get("text")
        if not name:
            continue
        loc = p.get("location") or {}
        level = parse_price_level(p.get("priceLevel"))
        coord = None
        if loc.get("latitude") is not None and loc.get("longitude") is not None:
            coord = Coordinate(lat=loc["latitude"], lng=loc["longitude"])
        out.append(CandidatePOI(
            id=p.get("id"),
            source="google_places",
            name=name,
            category="restaurant",
            city=city,
            address=p.get("formattedAddress"),
            coord=coord,
            rating=p.get("rating"),
            review_count=p.get("userRatingCount"),
            price_level=level,
            estimated_cost=_MEAL_COST_BY_LEVEL.get(level) if level is not None else None,
            tags=tuple(p.get("types") or ()),
            duration_minutes=75,
        ))
    logger.info(f"Places returned {len(out)} restaurants for {city}")
    return out
