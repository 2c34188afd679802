# tools/flight.py
"""Transport legs from the Amadeus Flight Offers API."""

import logging
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

from amadeus import Client, ResponseError

import config
from workflows.state import CandidatePOI

logger = logging.getLogger(__name__)

# Common city name -> IATA code (fast path, no API call)
CITY_TO_IATA = {
    "paris": "PAR",
    "london": "LON",
    "barcelona": "BCN",
    "madrid": "MAD",
    "rome": "ROM",
    "milan": "MIL",
    "amsterdam": "AMS",
    "berlin": "BER",
    "lisbon": "LIS",
    "porto": "OPO",
    "florence": "FLR",
    "venice": "VCE",
    "prague": "PRG",
    "vienna": "VIE",
    "brussels": "BRU",
    "munich": "MUC",
    "athens": "ATH",
    "seville": "SVQ",
    "naples": "NAP",
    "lyon": "LYS",
    "nice": "NCE",
    "marseille": "MRS",
    "copenhagen": "CPH",
    "new york": "NYC",
    "tokyo": "TYO",
}


@lru_cache(maxsize=1)
def _client() -> Client:
    return Client(
        client_id=config.get_amadeus_api_key(),
        client_secret=config.get_amadeus_api_secret(),
        hostname=config.AMADEUS_HOSTNAME,
    )


def resolve_iata(city: str) -> Optional[str]:
    """City name -> IATA city/airport code, via the local table or Amadeus."""
    code = CITY_TO_IATA.get(city.strip().lower())
    if code:
        return code
    try:
        response = _client().reference_data.locations.get(keyword=city, subType="CITY,AIRPORT")
    except ResponseError as error:
        logger.warning(f"Amadeus location lookup failed for {city}: {error}")
        return None
    for location in response.data or []:
        if location.get("iataCode"):
            return location["iataCode"]
    return None


def _parse_leg(
    itinerary: Dict[str, Any],
    origin_city: str,
    destination_city: str,
    carrier: str,
    price_per_traveler: Optional[float],
) -> Optional[CandidatePOI]:
    segments = itinerary.get("segments") or []
    if not segments:
        return None
    first, last = segments[0], segments[-1]
    depart_at = datetime.fromisoformat(first["departure"]["at"])
    arrive_at = datetime.fromisoformat(last["arrival"]["at"])
    flight_no = f"{first.get('carrierCode', carrier)}{first.get('number', '')}"
    return CandidatePOI(
        id=f"{flight_no}-{depart_at.isoformat()}",
        name=f"Flight {flight_no} {origin_city} -> {destination_city}",
        category="transport",
        city=destination_city,
        origin_city=origin_city,
        address=last["arrival"].get("iataCode"),
        depart_at=depart_at,
        arrive_at=arrive_at,
        estimated_cost=price_per_traveler,
        source="amadeus",
        tags=("flight",),
        duration_minutes=int((arrive_at - depart_at).total_seconds() // 60),
    )


def search_flights(
    origin_city: str,
    destination_city: str,
    departure_date: date,
    return_date: Optional[date] = None,
    adults: int = 1,
    max_results: int = 5,
    currency: str = "EUR",
) -> List[CandidatePOI]:
    """
    Search round-trip flights and return the cheapest offer as transport legs.

    Returns:
        [outbound] or [outbound, return] legs; [] when no offer exists.
    """
    origin = resolve_iata(origin_city)
    destination = resolve_iata(destination_city)
    if not origin or not destination:
        logger.warning(f"No IATA code for {origin_city if not origin else destination_city}")
        return []

    params = {
        "originLocationCode": origin,
        "destinationLocationCode": destination,
        "departureDate": departure_date.isoformat(),
        "adults": adults,
        "max": max_results,
        "currencyCode": currency,
    }
    if return_date:
        params["returnDate"] = return_date.isoformat()

    response = _client().shopping.flight_offers_search.get(**params)
    offers = response.data or []
    if not offers:
        return []

    offer = min(offers, key=lambda o: float((o.get("price") or {}).get("total") or "inf"))
    carrier = (offer.get("validatingAirlineCodes") or ["N/A"])[0]
    total = (offer.get("price") or {}).get("total")
    # Price covers both directions for every traveler
    itineraries = offer.get("itineraries") or []
    per_leg = float(total) / adults / max(1, len(itineraries)) if total else None

    legs: List[CandidatePOI] = []
    outbound = _parse_leg(itineraries[0], origin_city, destination_city, carrier, per_leg) if itineraries else None
    if outbound:
        legs.append(outbound)
    if len(itineraries) > 1:
        inbound = _parse_leg(itineraries[1], destination_city, origin_city, carrier, per_leg)
        if inbound:
            legs.append(inbound)
    return legs
