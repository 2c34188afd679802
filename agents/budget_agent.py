from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import config
from workflows.state import CandidatePOI, DayPlan, TripPreferences


@dataclass
class CostSummary:
    total: float
    breakdown: Dict[str, float] = field(default_factory=dict)
    currency: str = "EUR"
    budget: Optional[float] = None

    @property
    def over_budget(self) -> bool:
        return self.budget is not None and self.total > self.budget


# Total trip spend per person per day, by budget level, used to judge over-budget trips
TRIP_BUDGET_PER_PERSON_DAY = {"economic": 100.0, "moderate": 200.0, "comfort": 400.0, "luxury": 1200.0}


class BudgetAgent:
    """Aggregate the cost of an assembled itinerary."""

    def __init__(
        self,
        *,
        default_hotel_rate: float = config.BUDGET_DEFAULT_HOTEL_RATE,
        meal_per_person: float = config.BUDGET_MEAL_PER_PERSON,
        activity_per_stop: float = config.BUDGET_ACTIVITY_PER_STOP,
        transport_leg: float = config.BUDGET_TRANSPORT_LEG,
        currency: str = config.DEFAULT_CURRENCY,
    ) -> None:
        self.default_hotel_rate = default_hotel_rate
        self.meal_per_person = meal_per_person
        self.activity_per_stop = activity_per_stop
        self.transport_leg = transport_leg
        self.currency = currency

    def aggregate(
        self,
        preferences: TripPreferences,
        days: Sequence[DayPlan],
        lodging: Optional[CandidatePOI],
    ) -> CostSummary:
        """Lodging per room-night, per-person items times group size, legs per traveler."""
        travellers = preferences.group_size
        nights = max(0, preferences.duration_days - 1)

        lodging_total = 0.0
        if nights:
            rate = lodging.estimated_cost if lodging and lodging.estimated_cost is not None else self.default_hotel_rate
            lodging_total = rate * nights * preferences.rooms

        activities_total = 0.0
        meals_total = 0.0
        transport_total = 0.0
        for day in days:
            for item in day.items:
                if item.kind == "activity":
                    # a zero cost from the provider means free entry
                    cost = item.estimated_cost if item.estimated_cost is not None else self.activity_per_stop
                    activities_total += cost * travellers
                elif item.kind == "meal":
                    cost = item.estimated_cost if item.estimated_cost is not None else self.meal_per_person
                    meals_total += cost * travellers
                elif item.kind == "transfer":
                    cost = item.estimated_cost if item.estimated_cost is not None else self.transport_leg
                    transport_total += cost * travellers

        breakdown = {
            "lodging": round(lodging_total, 2),
            "activities": round(activities_total, 2),
            "meals": round(meals_total, 2),
            "transport": round(transport_total, 2),
        }
        return CostSummary(
            total=round(sum(breakdown.values()), 2),
            breakdown=breakdown,
            currency=self.currency,
            budget=self.trip_budget(preferences),
        )

    @staticmethod
    def trip_budget(preferences: TripPreferences) -> Optional[float]:
        if preferences.budget_custom:
            return preferences.budget_custom
        if preferences.budget_level:
            return TRIP_BUDGET_PER_PERSON_DAY[preferences.budget_level] * preferences.group_size * preferences.duration_days
        return None
