# agents/quality_agent.py
"""QualityAgent: assembles the final itinerary and validates it.

Assembly re-lays each day out in the balanced order, then runs three checks
over the merged result:

- every non-transfer item must have a street-level address; failing items are
  enriched through a fallback resolver or excluded with a logged reason;
- a fresh location tracker replays the whole trip end to end and removes
  anything scheduled outside the city the traveler is in;
- the cost is aggregated and a 0-100 quality score computed.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Callable, Dict, List, Optional, Sequence

import httpx

import config
from agents.budget_agent import BudgetAgent
from agents.itinerary_agent import BalanceResult
from agents.scoring_agent import AssignmentResult
from tools.geocoding import reverse_geocode
from workflows.address import validate_address
from workflows.location import City, Home, LocationTracker, normalize_city_key
from workflows.schedule import DayFrame, lay_out_day, parse_hhmm, poi_key, start_tracker
from workflows.schemas import BalancedDay
from workflows.state import CandidatePOI, DayPlan, Itinerary, ScheduledItem, TripPreferences

logger = logging.getLogger(__name__)

AddressResolver = Callable[[ScheduledItem], Optional[str]]

PENALTY_EMPTY_DAY = 15
PENALTY_EXCLUDED_ITEM = 2
MAX_EXCLUSION_PENALTY = 30
PENALTY_FALLBACK_BALANCE = 10
PENALTY_NO_LODGING = 10
PENALTY_OVER_BUDGET = 10
PENALTY_ESTIMATED_TRANSPORT = 5
PENALTY_PROVIDER_FAILURE = 5


def reverse_geocode_resolver(item: ScheduledItem) -> Optional[str]:
    """Street address from the item's coordinates, when it has any."""
    if item.coord is None:
        return None
    try:
        return reverse_geocode(item.coord)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning(f"Reverse geocoding failed for '{item.name}': {exc}")
        return None


class QualityAgent:
    """Merge day plans, enforce address and location rules, compute cost and score."""

    def __init__(
        self,
        *,
        budget_agent: Optional[BudgetAgent] = None,
        fallback_resolver: Optional[AddressResolver] = reverse_geocode_resolver,
    ) -> None:
        self.budget_agent = budget_agent or BudgetAgent()
        self.fallback_resolver = fallback_resolver

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def assemble(
        self,
        preferences: TripPreferences,
        assignment: AssignmentResult,
        balance: BalanceResult,
        *,
        provider_failures: Sequence[str] = (),
    ) -> Itinerary:
        plan_by_day: Dict[int, BalancedDay] = {d.day_number: d for d in balance.plan.days}
        rejections: List[str] = list(assignment.rejections)
        excluded: List[str] = []

        tracker = start_tracker(preferences)
        days: List[DayPlan] = []
        for frame in assignment.frames:
            balanced = plan_by_day.get(frame.day_number)
            pois = self._ordered(assignment.day_activities.get(frame.day_number, []), balanced)
            laid = lay_out_day(
                self._apply_start_time(frame, balanced),
                pois,
                assignment.day_meals.get(frame.day_number, {}),
                tracker,
                rejections.append,
            )
            days.append(DayPlan(
                day_number=frame.day_number,
                date=frame.date,
                city=preferences.destination,
                theme=balanced.theme if balanced else None,
                narrative=balanced.narrative if balanced else None,
                is_day_trip=balanced.is_day_trip if balanced else False,
                items=laid.items,
            ))

        days = [self.enforce_addresses(day, excluded) for day in days]
        days = self.final_location_pass(preferences, days, excluded)

        warnings: List[str] = []
        for day in days:
            if not day.activities():
                warnings.append(f"Day {day.day_number} has no activities")
        if balance.used_fallback:
            warnings.append("Day plan was not balanced by the language model")
        if assignment.lodging is None:
            warnings.append("No lodging could be selected")
        if assignment.estimated_legs:
            warnings.append("Transport times are estimates")
        for source in provider_failures:
            warnings.append(f"No data from the {source} provider")

        cost = self.budget_agent.aggregate(preferences, days, assignment.lodging)
        if cost.over_budget:
            warnings.append(f"Estimated cost {cost.total:.0f} {cost.currency} exceeds the budget of {cost.budget:.0f}")

        score = self.quality_score(
            days=days,
            excluded=len(excluded),
            used_fallback=balance.used_fallback,
            has_lodging=assignment.lodging is not None,
            over_budget=cost.over_budget,
            estimated_legs=assignment.estimated_legs,
            provider_failures=len(provider_failures),
        )

        return Itinerary(
            preferences=preferences,
            days=days,
            lodging=assignment.lodging,
            transport=list(assignment.legs),
            total_cost=cost.total,
            cost_breakdown=cost.breakdown,
            currency=cost.currency,
            quality_score=score,
            warnings=warnings,
            meta={
                "balanced_by": "fallback" if balance.used_fallback else config.DEFAULT_MODEL_NAME,
                "balance_attempts": balance.attempts,
                "balance_error": balance.error,
                "day_order_reason": balance.plan.day_order_reason,
                "rejections": rejections,
                "excluded": excluded,
                "estimated_transport": assignment.estimated_legs,
                "provider_failures": list(provider_failures),
            },
        )

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    @staticmethod
    def _ordered(pois: Sequence[CandidatePOI], balanced: Optional[BalancedDay]) -> List[CandidatePOI]:
        if balanced is None or not balanced.activity_order:
            return list(pois)
        rank = {key: i for i, key in enumerate(balanced.activity_order)}
        return sorted(pois, key=lambda p: rank.get(poi_key(p), len(rank)))

    @staticmethod
    def _apply_start_time(frame: DayFrame, balanced: Optional[BalancedDay]) -> DayFrame:
        """Honor a suggested later start, never one outside the day's window."""
        start = parse_hhmm(balanced.start_time) if balanced else None
        if start is None or start <= frame.start or start >= frame.end:
            return frame
        return dataclasses.replace(frame, start=start)

    # ------------------------------------------------------------------
    # Address completeness
    # ------------------------------------------------------------------

    def enforce_addresses(self, day: DayPlan, excluded: List[str]) -> DayPlan:
        kept: List[ScheduledItem] = []
        for item in day.items:
            # transfers point at a station or airport, not a street
            if item.kind == "transfer":
                kept.append(item)
                continue
            check = validate_address(item.name, item.address, item.city)
            if check.valid:
                kept.append(item)
                continue
            resolved = self.fallback_resolver(item) if self.fallback_resolver else None
            if resolved and validate_address(item.name, resolved, item.city).valid:
                logger.info(f"Enriched address of '{item.name}': {resolved}")
                kept.append(item.model_copy(update={"address": resolved}))
                continue
            reason = f"Day {day.day_number}: excluded, {check.error}"
            logger.warning(reason)
            excluded.append(reason)
        return day.model_copy(update={"items": kept})

    # ------------------------------------------------------------------
    # End-to-end location replay
    # ------------------------------------------------------------------

    def final_location_pass(
        self,
        preferences: TripPreferences,
        days: Sequence[DayPlan],
        excluded: List[str],
    ) -> List[DayPlan]:
        tracker = start_tracker(preferences)
        checked: List[DayPlan] = []
        for day in days:
            kept: List[ScheduledItem] = []
            timeline = sorted(day.items, key=lambda item: self._timeline_minutes(preferences, item))
            for item in timeline:
                if item.kind == "transfer":
                    self._replay_transfer(tracker, item, day.day_number)
                    kept.append(item)
                    continue
                check = tracker.validate(item.name, item.city)
                if check.valid:
                    kept.append(item)
                else:
                    reason = f"Day {day.day_number}: removed by final check, {check.reason}"
                    logger.warning(reason)
                    excluded.append(reason)
            checked.append(day.model_copy(update={"items": kept}))
        return checked

    @staticmethod
    def _timeline_minutes(preferences: TripPreferences, item: ScheduledItem) -> int:
        start = parse_hhmm(item.start_time) or 0
        if item.kind != "transfer":
            return start
        end = parse_hhmm(item.end_time)
        heading_out = normalize_city_key(item.destination_city) != normalize_city_key(preferences.origin)
        if heading_out and end is not None and end < start:
            # overnight arrival: the leg boarded the day before
            return end
        return start

    @staticmethod
    def _replay_transfer(tracker: LocationTracker, item: ScheduledItem, day_number: int) -> None:
        state = tracker.state
        position = state.city if isinstance(state, (Home, City)) else None
        if position != normalize_city_key(item.city):
            logger.warning(
                f"Day {day_number}: transfer '{item.name}' departs from {item.city} "
                f"but the traveler is in {position or 'transit'}"
            )
        tracker.board_flight(item.city, item.destination_city or "")
        tracker.land_flight(item.destination_city or "")

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @staticmethod
    def quality_score(
        *,
        days: Sequence[DayPlan],
        excluded: int,
        used_fallback: bool,
        has_lodging: bool,
        over_budget: bool,
        estimated_legs: bool,
        provider_failures: int,
    ) -> int:
        score = 100
        score -= PENALTY_EMPTY_DAY * sum(1 for d in days if not d.activities())
        score -= min(MAX_EXCLUSION_PENALTY, PENALTY_EXCLUDED_ITEM * excluded)
        if used_fallback:
            score -= PENALTY_FALLBACK_BALANCE
        if not has_lodging:
            score -= PENALTY_NO_LODGING
        if over_budget:
            score -= PENALTY_OVER_BUDGET
        if estimated_legs:
            score -= PENALTY_ESTIMATED_TRANSPORT
        score -= PENALTY_PROVIDER_FAILURE * provider_failures
        return max(0, min(100, score))
