# tools/hotels.py
"""Lodging candidates from Google Places (classic Text Search).

Google Places does not expose room rates, so the nightly price is estimated
from Google's 0..4 relative price level.
"""
import logging
import time
from typing import Any, Dict, Iterator, List, Optional

import requests

import config
from workflows.state import CandidatePOI, Coordinate

logger = logging.getLogger(__name__)

# Endpoints (Classic Places API)
PLACES_TEXT_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/textsearch/json"

# Estimated nightly room rate by Google price level
NIGHTLY_RATE_BY_LEVEL = {0: 50.0, 1: 75.0, 2: 120.0, 3: 220.0, 4: 450.0}


def _text_search_hotels_in_city(city: str, api_key: str, max_pages: int = 2) -> Iterator[Dict[str, Any]]:
    """Yield hotel (lodging) results for a city using Text Search."""
    params = {
        "query": f"hotels in {city}",
        "type": "lodging",
        "key": api_key,
    }

    for page in range(max_pages):
        resp = requests.get(PLACES_TEXT_SEARCH_URL, params=params, timeout=20)
        resp.raise_for_status()
        data = resp.json()

        if data.get("status") not in ("OK", "ZERO_RESULTS"):
            # Common statuses: OVER_QUERY_LIMIT, REQUEST_DENIED, INVALID_REQUEST
            raise RuntimeError(
                f"Google Places Text Search error: {data.get('status')} - {data.get('error_message')}"
            )

        for r in data.get("results", []):
            yield r

        next_page_token = data.get("next_page_token")
        if not next_page_token or page == max_pages - 1:
            break

        # Per Google docs: you must wait a short time before using next_page_token
        time.sleep(2)
        params = {"pagetoken": next_page_token, "key": api_key}


def _estimate_nightly_rate(price_level: Optional[int]) -> Optional[float]:
    if price_level is None:
        return None
    return NIGHTLY_RATE_BY_LEVEL.get(int(price_level))


def search_hotels_by_city(city: str, limit: int = 20) -> List[CandidatePOI]:
    """
    Search for hotels in ``city``.

    Returns lodging candidates whose ``estimated_cost`` is a nightly room rate
    (None when Google has no price level for the place).
    """
    api_key = config.get_google_maps_api_key()
    if not api_key:
        raise ValueError("Missing GOOGLE_MAPS_API_KEY (or GOOGLE_PLACES_API_KEY).")

    results: List[CandidatePOI] = []
    seen_ids = set()

    for item in _text_search_hotels_in_city(str(city), api_key):
        if len(results) >= limit:
            break

        place_id = item.get("place_id")
        if not place_id or place_id in seen_ids:
            continue
        seen_ids.add(place_id)

        loc = (item.get("geometry") or {}).get("location") or {}
        coord = None
        if loc.get("lat") is not None and loc.get("lng") is not None:
            coord = Coordinate(lat=loc["lat"], lng=loc["lng"])
        price_level = item.get("price_level")

        results.append(
            CandidatePOI(
                id=place_id,
                name=item.get("name") or "Hotel",
                category="lodging",
                city=city,
                address=item.get("formatted_address") or item.get("vicinity"),
                coord=coord,
                rating=item.get("rating"),
                review_count=item.get("user_ratings_total"),
                price_level=price_level,
                estimated_cost=_estimate_nightly_rate(price_level),
                source="google_places",
                tags=tuple(item.get("types") or ()),
            )
        )

    if not results:
        logger.warning(f"No hotels found for '{city}'.")
    return results
