# agents/research_agent.py
"""ResearchAgent: concurrent fetch of candidates from every provider."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

import config
from tools.attractions import search_attractions
from tools.dining import search_restaurants
from tools.flight import search_flights
from tools.hotels import search_hotels_by_city
from workflows.state import CandidatePOI, TripPreferences

logger = logging.getLogger(__name__)

Adapter = Callable[[TripPreferences], List[CandidatePOI]]

CATEGORIES = ("lodging", "activities", "dining", "transport")


@dataclass
class FetchResult:
    activities: List[CandidatePOI] = field(default_factory=list)
    restaurants: List[CandidatePOI] = field(default_factory=list)
    lodging: List[CandidatePOI] = field(default_factory=list)
    transport: List[CandidatePOI] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        return {
            "activities": len(self.activities),
            "dining": len(self.restaurants),
            "lodging": len(self.lodging),
            "transport": len(self.transport),
        }

    @property
    def empty(self) -> bool:
        return not any(self.counts().values())


# ----------------------------------------------------------------------
# Default adapters, one per provider category
# ----------------------------------------------------------------------

def fetch_activities(preferences: TripPreferences) -> List[CandidatePOI]:
    results = search_attractions(
        preferences.destination,
        tags=preferences.activities,
        limit=config.PROVIDER_RESULT_LIMIT,
    )
    if preferences.must_see:
        results = search_attractions(
            preferences.destination,
            tags=(preferences.must_see,),
            limit=5,
        ) + results
    return results


def fetch_dining(preferences: TripPreferences) -> List[CandidatePOI]:
    lunch_dinner = search_restaurants(preferences.destination, limit=config.PROVIDER_RESULT_LIMIT)
    breakfast = search_restaurants(preferences.destination, query="breakfast cafe bakery", limit=10)
    merged: Dict[str, CandidatePOI] = {}
    for poi in breakfast + lunch_dinner:
        merged.setdefault(poi.id or poi.name, poi)
    return list(merged.values())


def fetch_lodging(preferences: TripPreferences) -> List[CandidatePOI]:
    return search_hotels_by_city(preferences.destination, limit=config.PROVIDER_RESULT_LIMIT)


def fetch_transport(preferences: TripPreferences) -> List[CandidatePOI]:
    if preferences.transport not in ("plane", "flight", "optimal"):
        logger.info(f"Transport mode '{preferences.transport}' has no provider; legs will be estimated")
        return []
    return search_flights(
        preferences.origin,
        preferences.destination,
        preferences.start_date,
        return_date=preferences.end_date if preferences.duration_days > 1 else None,
        adults=preferences.group_size,
        currency=config.DEFAULT_CURRENCY,
    )


DEFAULT_ADAPTERS: Dict[str, Adapter] = {
    "lodging": fetch_lodging,
    "activities": fetch_activities,
    "dining": fetch_dining,
    "transport": fetch_transport,
}


class ResearchAgent:
    """Stateless agent that fans out to every provider adapter."""

    def __init__(self, adapters: Optional[Dict[str, Adapter]] = None, *, max_concurrency: Optional[int] = None):
        self.adapters: Dict[str, Adapter] = dict(adapters) if adapters is not None else dict(DEFAULT_ADAPTERS)
        self.max_concurrency = max(1, max_concurrency or config.RESEARCH_MAX_CONCURRENCY)
        missing = config.validate_api_keys()
        if missing and adapters is None:
            logger.warning(f"Missing API keys: {', '.join(missing)}")

    @staticmethod
    def _is_retryable_error(exc: BaseException) -> bool:
        status = getattr(getattr(exc, "response", None), "status_code", None)
        if isinstance(status, int) and status in {429, 500, 502, 503, 504}:
            return True

        text = str(exc).lower()
        retry_tokens = (" 429", " 500", " 502", " 503", " 504", "timed out", "temporarily unavailable")
        return any(token in text for token in retry_tokens)

    async def _call_with_retries(self, func, *args, **kwargs):
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(self._is_retryable_error),
            wait=wait_exponential(min=0.5, max=6),
            stop=stop_after_attempt(3),
            reraise=True,
        ):
            with attempt:
                return await asyncio.to_thread(func, *args, **kwargs)

    async def fetch_all(self, preferences: TripPreferences) -> FetchResult:
        """Run every adapter concurrently. Never raises; failed sources come back empty."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(name: str, adapter: Adapter) -> List[CandidatePOI]:
            async with semaphore:
                return await self._call_with_retries(adapter, preferences)

        names = list(self.adapters.keys())
        task_results = await asyncio.gather(
            *(run(name, self.adapters[name]) for name in names),
            return_exceptions=True,
        )

        result = FetchResult()
        buckets = {
            "activities": result.activities,
            "dining": result.restaurants,
            "lodging": result.lodging,
            "transport": result.transport,
        }
        for name, outcome in zip(names, task_results):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning(f"{name} provider failed, continuing without it: {outcome}")
                result.failures.append(name)
                continue
            bucket = buckets.get(name)
            if bucket is None:
                logger.warning(f"Ignoring results from unknown provider category '{name}'")
                continue
            bucket.extend(outcome or [])

        logger.info(f"Fetched candidates: {result.counts()} (failed: {result.failures or 'none'})")
        return result
