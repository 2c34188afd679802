"""Typed models shared across the itinerary pipeline."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

BudgetLevel = Literal["economic", "moderate", "comfort", "luxury"]
Pace = Literal["relaxed", "moderate", "intensive"]
POICategory = Literal["activity", "restaurant", "lodging", "transport"]
ItemKind = Literal["activity", "meal", "transfer", "lodging"]
MealType = Literal["breakfast", "lunch", "dinner"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TripPreferences(BaseModel):
    """Normalized traveler preferences. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    origin: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)
    start_date: date
    duration_days: int = Field(3, ge=1, le=30)
    budget_level: Optional[BudgetLevel] = None
    budget_custom: Optional[float] = Field(None, ge=0, description="Total trip budget")
    group_size: int = Field(1, ge=1)
    group_type: str = "solo"
    transport: str = "plane"
    activities: Tuple[str, ...] = ()
    pace: Pace = "moderate"
    must_see: Optional[str] = None

    @field_validator("activities", mode="before")
    @classmethod
    def normalize_activities(cls, v: Any) -> Tuple[str, ...]:
        """Accept a list, tuple or comma-separated string of tags."""
        if v is None:
            return ()
        if isinstance(v, str):
            v = v.split(",")
        return tuple(str(item).strip().lower() for item in v if str(item).strip())

    @field_validator("origin", "destination", mode="before")
    @classmethod
    def strip_city(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @property
    def end_date(self) -> date:
        return self.start_date + timedelta(days=self.duration_days - 1)

    def trip_dates(self) -> List[date]:
        return [self.start_date + timedelta(days=i) for i in range(self.duration_days)]

    @property
    def rooms(self) -> int:
        """Rooms needed for the group, two travelers per room."""
        return max(1, (self.group_size + 1) // 2)


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class CandidatePOI(BaseModel):
    """A point of interest returned by one provider for one run."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str
    category: POICategory
    city: str = ""
    address: Optional[str] = None
    coord: Optional[Coordinate] = None
    estimated_cost: Optional[float] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    source: str
    tags: Tuple[str, ...] = ()
    duration_minutes: int = 90
    price_level: Optional[int] = None
    # transport legs only
    origin_city: Optional[str] = None
    depart_at: Optional[datetime] = None
    arrive_at: Optional[datetime] = None


class ScheduledItem(BaseModel):
    kind: ItemKind
    name: str
    city: str
    address: Optional[str] = None
    start_time: str
    end_time: str
    estimated_cost: Optional[float] = None
    poi_id: Optional[str] = None
    meal_type: Optional[MealType] = None
    coord: Optional[Coordinate] = None
    source: Optional[str] = None
    tags: Tuple[str, ...] = ()
    notes: Optional[str] = None
    # transfers only: ``city`` is the departure city
    destination_city: Optional[str] = None


class DayPlan(BaseModel):
    day_number: int
    date: date
    city: str
    theme: Optional[str] = None
    narrative: Optional[str] = None
    items: List[ScheduledItem] = Field(default_factory=list)
    is_day_trip: bool = False

    def activities(self) -> List[ScheduledItem]:
        return [item for item in self.items if item.kind == "activity"]


class Itinerary(BaseModel):
    """Terminal artifact of one generation run."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    preferences: TripPreferences
    days: List[DayPlan] = Field(default_factory=list)
    lodging: Optional[CandidatePOI] = None
    transport: List[CandidatePOI] = Field(default_factory=list)
    total_cost: float = 0.0
    cost_breakdown: Dict[str, float] = Field(default_factory=dict)
    currency: str = "EUR"
    quality_score: int = 100
    warnings: List[str] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=utcnow)


class PipelineEvent(BaseModel):
    """Observability record for one stage transition. Never read back by stages."""

    stage: str
    status: Literal["completed", "failed"] = "completed"
    timestamp: datetime = Field(default_factory=utcnow)
    payload: Dict[str, Any] = Field(default_factory=dict)
