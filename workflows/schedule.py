"""Day timelines: when each day starts and ends, and how items are laid out.

Laying out a day replays the transport legs through a
:class:`~workflows.location.LocationTracker`, so every activity and meal is
checked against where the traveler actually is at that moment.  Items the
tracker rejects are reported through ``on_reject`` and left out.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from workflows.location import LocationTracker, normalize_city_key
from workflows.state import CandidatePOI, ScheduledItem, TripPreferences

logger = logging.getLogger(__name__)

DAY_START = 9 * 60
ACTIVITY_CUTOFF = 18 * 60 + 30
BREAKFAST_AT = 8 * 60 + 15
LUNCH_EARLIEST = 12 * 60
LUNCH_LATEST = 14 * 60 + 30
DINNER_AT = 19 * 60 + 30
TRANSFER_BUFFER = 20
ARRIVAL_SETTLE = 90
DEPARTURE_MARGIN = 180
MEAL_DEPARTURE_MARGIN = 120
HOURS_PER_ACTIVITY = 1.5

MEAL_MINUTES = {"breakfast": 45, "lunch": 75, "dinner": 90}

ACTIVITIES_PER_DAY = {"relaxed": 3, "moderate": 4, "intensive": 5}

RejectCallback = Callable[[str], None]


def fmt_minutes(minutes: int) -> str:
    minutes = max(0, min(int(minutes), 24 * 60 - 1))
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_hhmm(value: Optional[str]) -> Optional[int]:
    if not value or ":" not in value:
        return None
    hours, _, mins = value.partition(":")
    try:
        return int(hours) * 60 + int(mins[:2])
    except ValueError:
        return None


def poi_key(poi: CandidatePOI) -> str:
    """Stable identifier for a candidate, generated when the provider gave none."""
    if poi.id:
        return poi.id
    digest = hashlib.sha1(f"{poi.name}|{poi.city}".encode("utf-8")).hexdigest()[:12]
    return f"poi-{digest}"


def _minutes_of(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


# ----------------------------------------------------------------------
# Transport legs
# ----------------------------------------------------------------------

def synthesize_legs(preferences: TripPreferences) -> List[CandidatePOI]:
    """Estimated outbound/return legs used when no provider returned any."""
    outbound = CandidatePOI(
        id="estimated-outbound",
        name=f"Travel {preferences.origin} -> {preferences.destination}",
        category="transport",
        city=preferences.destination,
        origin_city=preferences.origin,
        address=preferences.destination,
        depart_at=datetime.combine(preferences.start_date, time(10, 0)),
        arrive_at=datetime.combine(preferences.start_date, time(12, 0)),
        source="estimated",
        tags=(preferences.transport,),
        duration_minutes=120,
    )
    inbound = CandidatePOI(
        id="estimated-return",
        name=f"Travel {preferences.destination} -> {preferences.origin}",
        category="transport",
        city=preferences.origin,
        origin_city=preferences.destination,
        address=preferences.origin,
        depart_at=datetime.combine(preferences.end_date, time(18, 0)),
        arrive_at=datetime.combine(preferences.end_date, time(20, 0)),
        source="estimated",
        tags=(preferences.transport,),
        duration_minutes=120,
    )
    return [outbound, inbound]


def split_legs(
    preferences: TripPreferences, legs: Sequence[CandidatePOI]
) -> Tuple[Optional[CandidatePOI], Optional[CandidatePOI]]:
    """Pick the outbound and return legs out of whatever the provider returned."""
    destination = normalize_city_key(preferences.destination)
    origin = normalize_city_key(preferences.origin)
    outbound = next(
        (leg for leg in legs if normalize_city_key(leg.city) == destination and leg.arrive_at),
        None,
    )
    inbound = next(
        (leg for leg in legs if normalize_city_key(leg.city) == origin and leg.depart_at and leg is not outbound),
        None,
    )
    return outbound, inbound


# ----------------------------------------------------------------------
# Day frames
# ----------------------------------------------------------------------

@dataclass
class DayFrame:
    day_number: int
    date: date
    start: int = DAY_START
    end: int = ACTIVITY_CUTOFF
    max_activities: int = 4
    meals: Tuple[str, ...] = ("breakfast", "lunch", "dinner")
    arrival_leg: Optional[CandidatePOI] = None
    departure_leg: Optional[CandidatePOI] = None

    @property
    def available_minutes(self) -> int:
        return max(0, self.end - self.start)


def build_day_frames(preferences: TripPreferences, legs: Sequence[CandidatePOI]) -> List[DayFrame]:
    """One frame per trip day, shortened around arrival and departure."""
    per_day = ACTIVITIES_PER_DAY.get(preferences.pace, 4)
    dates = preferences.trip_dates()
    frames = [DayFrame(i + 1, d, max_activities=per_day) for i, d in enumerate(dates)]
    outbound, inbound = split_legs(preferences, legs)

    if outbound is not None:
        arrival = outbound.arrive_at
        frame = next((f for f in frames if f.date == arrival.date()), frames[0])
        frame.arrival_leg = outbound
        arrive_min = _minutes_of(arrival)
        frame.start = max(DAY_START, arrive_min + ARRIVAL_SETTLE)
        hours = 22 - (arrive_min / 60 + ARRIVAL_SETTLE / 60)
        frame.max_activities = min(frame.max_activities, max(0, int(hours // HOURS_PER_ACTIVITY)))
        meals = []
        if frame.start <= 10 * 60:
            meals.append("breakfast")
        if frame.start <= LUNCH_LATEST - MEAL_MINUTES["lunch"]:
            meals.append("lunch")
        if arrive_min + 60 <= DINNER_AT:
            meals.append("dinner")
        frame.meals = tuple(meals)
        # days before the traveler arrives cannot hold anything
        for earlier in frames:
            if earlier.date < frame.date:
                earlier.max_activities = 0
                earlier.meals = ()

    if inbound is not None:
        departure = inbound.depart_at
        frame = next((f for f in frames if f.date == departure.date()), frames[-1])
        frame.departure_leg = inbound
        depart_min = _minutes_of(departure)
        frame.end = min(frame.end, depart_min - DEPARTURE_MARGIN)
        hours = depart_min / 60 - DEPARTURE_MARGIN / 60 - 8
        frame.max_activities = min(frame.max_activities, max(0, int(hours // HOURS_PER_ACTIVITY)))
        meals = [m for m in frame.meals if m != "dinner"]
        if depart_min - MEAL_DEPARTURE_MARGIN >= DINNER_AT + MEAL_MINUTES["dinner"] and "dinner" in frame.meals:
            meals.append("dinner")
        if depart_min - DEPARTURE_MARGIN < BREAKFAST_AT + MEAL_MINUTES["breakfast"] and "breakfast" in meals:
            meals.remove("breakfast")
        if depart_min - DEPARTURE_MARGIN < LUNCH_EARLIEST + MEAL_MINUTES["lunch"] and "lunch" in meals:
            meals.remove("lunch")
        frame.meals = tuple(meals)
        for later in frames:
            if later.date > frame.date:
                later.max_activities = 0
                later.meals = ()

    return frames


# ----------------------------------------------------------------------
# Item construction
# ----------------------------------------------------------------------

def transfer_item(leg: CandidatePOI) -> ScheduledItem:
    return ScheduledItem(
        kind="transfer",
        name=leg.name,
        city=leg.origin_city or "",
        destination_city=leg.city,
        address=leg.address,
        start_time=fmt_minutes(_minutes_of(leg.depart_at)) if leg.depart_at else "00:00",
        end_time=fmt_minutes(_minutes_of(leg.arrive_at)) if leg.arrive_at else "00:00",
        estimated_cost=leg.estimated_cost,
        poi_id=poi_key(leg),
        source=leg.source,
        tags=leg.tags,
    )


def poi_item(poi: CandidatePOI, kind: str, start: int, end: int, meal_type: Optional[str] = None) -> ScheduledItem:
    return ScheduledItem(
        kind=kind,  # type: ignore[arg-type]
        name=poi.name,
        city=poi.city,
        address=poi.address,
        start_time=fmt_minutes(start),
        end_time=fmt_minutes(end),
        estimated_cost=poi.estimated_cost,
        poi_id=poi_key(poi),
        meal_type=meal_type,  # type: ignore[arg-type]
        coord=poi.coord,
        source=poi.source,
        tags=poi.tags,
    )


def is_local_trip(preferences: TripPreferences) -> bool:
    return normalize_city_key(preferences.origin) == normalize_city_key(preferences.destination)


def start_tracker(preferences: TripPreferences) -> LocationTracker:
    """Fresh tracker at home; a trip inside the home city starts already there."""
    tracker = LocationTracker(preferences.origin)
    if is_local_trip(preferences):
        tracker.board_flight(preferences.origin, preferences.destination)
        tracker.land_flight(preferences.destination, datetime.combine(preferences.start_date, time(DAY_START // 60)))
    return tracker


def apply_leg(tracker: LocationTracker, leg: CandidatePOI) -> None:
    tracker.board_flight(leg.origin_city or "", leg.city)
    tracker.land_flight(leg.city, leg.arrive_at)


@dataclass
class LaidOutDay:
    items: List[ScheduledItem] = field(default_factory=list)
    placed_activities: List[CandidatePOI] = field(default_factory=list)


def lay_out_day(
    frame: DayFrame,
    activities: Sequence[CandidatePOI],
    meals: Dict[str, CandidatePOI],
    tracker: LocationTracker,
    on_reject: RejectCallback,
) -> LaidOutDay:
    """Place the day's items in time order, validating each against the tracker."""
    out = LaidOutDay()
    items = out.items
    meal_deadline: Optional[int] = None
    if frame.departure_leg is not None and frame.departure_leg.depart_at is not None:
        meal_deadline = _minutes_of(frame.departure_leg.depart_at) - MEAL_DEPARTURE_MARGIN

    def place(poi: CandidatePOI, kind: str, start: int, end: int, meal_type: Optional[str] = None) -> bool:
        if kind == "meal" and meal_deadline is not None and end > meal_deadline:
            on_reject(f'Day {frame.day_number}: {meal_type} at "{poi.name}" would end after departure')
            return False
        check = tracker.validate(poi.name, poi.city)
        if not check.valid:
            on_reject(f"Day {frame.day_number}: {check.reason}")
            return False
        items.append(poi_item(poi, kind, start, end, meal_type))
        return True

    if frame.arrival_leg is not None:
        items.append(transfer_item(frame.arrival_leg))
        apply_leg(tracker, frame.arrival_leg)

    cursor = frame.start
    if "breakfast" in frame.meals and "breakfast" in meals:
        b_start = max(BREAKFAST_AT, frame.start - MEAL_MINUTES["breakfast"] - 15)
        place(meals["breakfast"], "meal", b_start, b_start + MEAL_MINUTES["breakfast"], "breakfast")

    lunch_pending = "lunch" in frame.meals and "lunch" in meals

    def maybe_lunch(force: bool = False) -> None:
        nonlocal cursor, lunch_pending
        if not lunch_pending:
            return
        if cursor >= LUNCH_EARLIEST or force:
            start = max(cursor, LUNCH_EARLIEST)
            if start > LUNCH_LATEST:
                lunch_pending = False
                return
            end = start + MEAL_MINUTES["lunch"]
            if place(meals["lunch"], "meal", start, end, "lunch"):
                cursor = end + TRANSFER_BUFFER
            lunch_pending = False

    for poi in activities:
        maybe_lunch()
        end = cursor + poi.duration_minutes
        if end > frame.end:
            on_reject(f'Day {frame.day_number}: no time left for "{poi.name}"')
            continue
        if place(poi, "activity", cursor, end):
            out.placed_activities.append(poi)
            cursor = end + TRANSFER_BUFFER

    maybe_lunch(force=True)

    if "dinner" in frame.meals and "dinner" in meals:
        start = max(cursor, DINNER_AT)
        place(meals["dinner"], "meal", start, start + MEAL_MINUTES["dinner"], "dinner")

    if frame.departure_leg is not None:
        items.append(transfer_item(frame.departure_leg))
        apply_leg(tracker, frame.departure_leg)

    return out
