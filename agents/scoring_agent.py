# agents/scoring_agent.py
"""ScoringAgent: ranks candidates, clusters them into days, assigns lodging and meals.

Stages, in order:

1. Score activities against preferences (popularity, rating, tag match,
   budget fit, must-see) and keep the best ones for the trip length.
2. Cluster the selection geographically (K-means, one cluster per day that
   has room) and rebalance clusters to each day's capacity.
3. Pick one lodging near the barycenter of the selected activities within
   the nightly budget.
4. Pick breakfast/lunch/dinner per day near the day's activities.
5. Lay every day out in time, replaying the transport legs through a
   location tracker so nothing lands in a city the traveler is not in.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from tools.geo import barycenter, distance_km, has_coord
from workflows.dedup import canonicalize_name
from workflows.schedule import (
    DayFrame,
    build_day_frames,
    is_local_trip,
    lay_out_day,
    start_tracker,
    synthesize_legs,
)
from workflows.state import CandidatePOI, Coordinate, DayPlan, TripPreferences

logger = logging.getLogger(__name__)

# Activity tags -> provider place types that satisfy them
TAG_TYPES: Dict[str, Set[str]] = {
    "culture": {"museum", "art_gallery", "historical_landmark", "monument", "church", "place_of_worship", "cultural_landmark"},
    "museums": {"museum", "art_gallery"},
    "history": {"historical_landmark", "monument", "castle", "museum", "historical_place"},
    "art": {"art_gallery", "museum"},
    "nature": {"park", "national_park", "garden", "hiking_area", "botanical_garden", "beach"},
    "beach": {"beach"},
    "nightlife": {"night_club", "bar"},
    "shopping": {"shopping_mall", "market", "store"},
    "gastronomy": {"market", "food"},
    "adventure": {"amusement_park", "hiking_area", "water_park"},
    "family": {"zoo", "aquarium", "amusement_park", "park"},
}

# Per person, per day activity spend by budget level
DAILY_ACTIVITY_BUDGET = {"economic": 20.0, "moderate": 40.0, "comfort": 80.0, "luxury": 200.0}

# Max nightly rate by budget level
MAX_NIGHTLY_RATE = {"economic": 60.0, "moderate": 120.0, "comfort": 250.0, "luxury": 1000.0}
DEFAULT_NIGHTLY_RATE = 150.0
NIGHTLY_RATE_TOLERANCE = 1.3
MIN_LODGING_CANDIDATES = 3
LODGING_DISTANCE_BANDS_KM = (5.0, 8.0, 12.0)

MEAL_MAX_DISTANCE_KM = {"breakfast": 2.0, "lunch": 3.0, "dinner": 3.0}
BREAKFAST_BONUS = 3.0
BREAKFAST_WORDS = ("cafe", "coffee", "bakery", "breakfast", "brunch", "boulangerie", "patisserie")
HEAVY_CUISINE_WORDS = (
    "steakhouse", "steak_house", "sushi", "bbq", "barbecue", "pizza", "burger",
    "bar", "pub", "night_club", "ramen", "kebab",
)

KMEANS_MAX_ITERATIONS = 20


@dataclass
class AssignmentResult:
    days: List[DayPlan]
    frames: List[DayFrame]
    day_activities: Dict[int, List[CandidatePOI]]
    day_meals: Dict[int, Dict[str, CandidatePOI]]
    lodging: Optional[CandidatePOI]
    legs: List[CandidatePOI]
    rejections: List[str] = field(default_factory=list)
    estimated_legs: bool = False


# ----------------------------------------------------------------------
# Scoring
# ----------------------------------------------------------------------

def matches_tags(poi: CandidatePOI, tags: Iterable[str]) -> bool:
    wanted: Set[str] = set()
    for tag in tags:
        wanted |= TAG_TYPES.get(tag, {tag})
    return bool(wanted & set(poi.tags))


def activity_budget_per_day(preferences: TripPreferences) -> Optional[float]:
    if preferences.budget_custom:
        # a fifth of the total budget goes to activities
        return preferences.budget_custom * 0.2 / preferences.duration_days / preferences.group_size
    if preferences.budget_level:
        return DAILY_ACTIVITY_BUDGET[preferences.budget_level]
    return None


def score_activity(poi: CandidatePOI, preferences: TripPreferences) -> float:
    reviews = poi.review_count or 0
    score = math.log10(reviews) * 2 if reviews > 1 else 0.0
    score += (poi.rating if poi.rating is not None else 3.0) * 2
    if preferences.activities and matches_tags(poi, preferences.activities):
        score += 3
    if preferences.must_see:
        key = canonicalize_name(preferences.must_see)
        if key and key in canonicalize_name(poi.name):
            score += 10
    daily = activity_budget_per_day(preferences)
    if daily is not None and poi.estimated_cost is not None:
        if poi.estimated_cost > daily:
            score -= 2
        elif poi.estimated_cost == 0 and preferences.budget_level == "economic":
            score += 1
    return score


def target_activity_count(preferences: TripPreferences, frames: Sequence[DayFrame]) -> int:
    per_day = max((f.max_activities for f in frames), default=4)
    full_days = max(0, preferences.duration_days - 2)
    return max(2 + 2 + full_days * per_day + 2, preferences.duration_days * 3, 6)


# ----------------------------------------------------------------------
# Clustering
# ----------------------------------------------------------------------

def _dist(a: Optional[Coordinate], b: Optional[Coordinate]) -> float:
    d = distance_km(a, b)
    return d if d is not None else float("inf")


def kmeans_clusters(points: Sequence[CandidatePOI], k: int) -> List[List[CandidatePOI]]:
    """Cluster scored candidates (best first) into ``k`` geographic groups.

    Seeding is deterministic: the first centroid is the best candidate, each
    next one the candidate farthest from all chosen centroids.
    """
    if k <= 0:
        return []
    if len(points) <= k:
        return [[p] for p in points] + [[] for _ in range(k - len(points))]

    centroids: List[Coordinate] = [points[0].coord]  # type: ignore[list-item]
    while len(centroids) < k:
        farthest = max(points, key=lambda p: min(_dist(p.coord, c) for c in centroids))
        centroids.append(farthest.coord)  # type: ignore[arg-type]

    assignment: List[int] = [-1] * len(points)
    for _ in range(KMEANS_MAX_ITERATIONS):
        changed = False
        for i, p in enumerate(points):
            nearest = min(range(k), key=lambda c: _dist(p.coord, centroids[c]))
            if nearest != assignment[i]:
                assignment[i] = nearest
                changed = True
        for c in range(k):
            center = barycenter(p.coord for i, p in enumerate(points) if assignment[i] == c)
            if center is not None:
                centroids[c] = center
        if not changed:
            break

    clusters: List[List[CandidatePOI]] = [[] for _ in range(k)]
    for i, p in enumerate(points):
        clusters[assignment[i]].append(p)
    return clusters


def nearest_neighbor_order(pois: Sequence[CandidatePOI], start: Optional[Coordinate] = None) -> List[CandidatePOI]:
    remaining = list(pois)
    if not remaining:
        return []
    located = [p for p in remaining if has_coord(p.coord)]
    unlocated = [p for p in remaining if not has_coord(p.coord)]
    ordered: List[CandidatePOI] = []
    current = start if has_coord(start) else (located[0].coord if located else None)
    while located:
        nxt = min(located, key=lambda p: _dist(current, p.coord))
        ordered.append(nxt)
        located.remove(nxt)
        current = nxt.coord
    return ordered + unlocated


class ScoringAgent:
    """Deterministic ranking, clustering and assignment stage."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def assign(
        self,
        preferences: TripPreferences,
        activities: Sequence[CandidatePOI],
        restaurants: Sequence[CandidatePOI],
        lodging: Sequence[CandidatePOI],
        legs: Sequence[CandidatePOI],
    ) -> AssignmentResult:
        legs = list(legs)
        estimated = False
        if not legs and not is_local_trip(preferences):
            legs = synthesize_legs(preferences)
            estimated = True
            logger.info("No transport legs fetched; using estimated arrival/departure times")

        frames = build_day_frames(preferences, legs)
        ranked = sorted(activities, key=lambda p: score_activity(p, preferences), reverse=True)
        selected = ranked[: target_activity_count(preferences, frames)]

        day_activities = self.cluster_into_days(selected, frames)
        chosen_lodging = self.choose_lodging(preferences, lodging, [p for day in day_activities.values() for p in day])
        for day_number, pois in day_activities.items():
            start = chosen_lodging.coord if chosen_lodging else None
            day_activities[day_number] = nearest_neighbor_order(pois, start)

        day_meals = self.assign_meals(frames, day_activities, restaurants, chosen_lodging)

        rejections: List[str] = []
        tracker = start_tracker(preferences)
        days: List[DayPlan] = []
        for frame in frames:
            laid = lay_out_day(frame, day_activities[frame.day_number], day_meals[frame.day_number], tracker, rejections.append)
            day_activities[frame.day_number] = laid.placed_activities
            days.append(DayPlan(day_number=frame.day_number, date=frame.date, city=preferences.destination, items=laid.items))

        for reason in rejections:
            logger.info(f"Rejected: {reason}")

        return AssignmentResult(
            days=days,
            frames=frames,
            day_activities=day_activities,
            day_meals=day_meals,
            lodging=chosen_lodging,
            legs=legs,
            rejections=rejections,
            estimated_legs=estimated,
        )

    # ------------------------------------------------------------------
    # Day clustering
    # ------------------------------------------------------------------

    def cluster_into_days(self, selected: Sequence[CandidatePOI], frames: Sequence[DayFrame]) -> Dict[int, List[CandidatePOI]]:
        days: Dict[int, List[CandidatePOI]] = {f.day_number: [] for f in frames}
        open_frames = [f for f in frames if f.max_activities > 0]
        if not open_frames or not selected:
            return days

        located = [p for p in selected if has_coord(p.coord)]
        unlocated = [p for p in selected if not has_coord(p.coord)]

        clusters = kmeans_clusters(located, len(open_frames))
        # biggest cluster goes to the roomiest day
        clusters.sort(key=len, reverse=True)
        by_capacity = sorted(open_frames, key=lambda f: (-f.max_activities, f.day_number))
        centers: Dict[int, Optional[Coordinate]] = {}
        for frame, cluster in zip(by_capacity, clusters):
            days[frame.day_number] = list(cluster)
            centers[frame.day_number] = barycenter(p.coord for p in cluster)

        frame_by_day = {f.day_number: f for f in open_frames}
        overflow: List[CandidatePOI] = []
        for day_number, pois in days.items():
            frame = frame_by_day.get(day_number)
            if frame is None:
                overflow.extend(pois)
                days[day_number] = []
                continue
            fitting = [p for p in pois if p.duration_minutes <= frame.available_minutes]
            overflow.extend(p for p in pois if p.duration_minutes > frame.available_minutes)
            center = centers.get(day_number)
            fitting.sort(key=lambda p: _dist(p.coord, center))
            days[day_number] = fitting[: frame.max_activities]
            overflow.extend(fitting[frame.max_activities:])

        # move overflow to the nearest day that still has room
        for poi in overflow + unlocated:
            candidates = [
                f for f in open_frames
                if len(days[f.day_number]) < f.max_activities and poi.duration_minutes <= f.available_minutes
            ]
            if not candidates:
                continue
            target = min(candidates, key=lambda f: (_dist(poi.coord, centers.get(f.day_number)), len(days[f.day_number])))
            days[target.day_number].append(poi)
        return days

    # ------------------------------------------------------------------
    # Lodging
    # ------------------------------------------------------------------

    @staticmethod
    def max_nightly_rate(preferences: TripPreferences) -> float:
        if preferences.budget_custom:
            nights = max(1, preferences.duration_days - 1)
            return preferences.budget_custom * 0.4 / nights / preferences.rooms
        if preferences.budget_level:
            return MAX_NIGHTLY_RATE[preferences.budget_level]
        return DEFAULT_NIGHTLY_RATE

    def choose_lodging(
        self,
        preferences: TripPreferences,
        lodging: Sequence[CandidatePOI],
        activities: Sequence[CandidatePOI],
    ) -> Optional[CandidatePOI]:
        if not lodging:
            return None
        max_rate = self.max_nightly_rate(preferences)
        in_budget = [h for h in lodging if h.estimated_cost is None or h.estimated_cost <= max_rate * NIGHTLY_RATE_TOLERANCE]
        pool = in_budget if len(in_budget) >= MIN_LODGING_CANDIDATES else list(lodging)

        center = barycenter(p.coord for p in activities)
        if center is not None:
            for band in LODGING_DISTANCE_BANDS_KM:
                near = [h for h in pool if _dist(h.coord, center) <= band]
                if near:
                    pool = near
                    break

        def lodging_score(hotel: CandidatePOI) -> float:
            dist = distance_km(hotel.coord, center)
            if dist is None:
                dist = 1.0
            rating = hotel.rating or 0.0
            rating_norm = (rating * 2 if rating <= 5 else rating) / 10
            score = dist ** 2.15 / (0.75 + rating_norm * 0.25)
            if hotel.estimated_cost is not None and hotel.estimated_cost > max_rate:
                score += (hotel.estimated_cost - max_rate) / max_rate * 2
            return score

        best = min(pool, key=lodging_score)
        logger.info(f"Lodging: {best.name} (max nightly rate {max_rate:.0f})")
        return best

    # ------------------------------------------------------------------
    # Meals
    # ------------------------------------------------------------------

    @staticmethod
    def _text(poi: CandidatePOI) -> str:
        return " ".join([poi.name.lower(), *poi.tags])

    def _meal_quality(self, poi: CandidatePOI, meal_type: str) -> float:
        reviews = max(1, poi.review_count or 1)
        quality = (poi.rating or 3.0) * math.log10(reviews + 1)
        if meal_type == "breakfast" and self._is_breakfast_place(poi):
            quality += BREAKFAST_BONUS
        return quality

    def _is_breakfast_place(self, poi: CandidatePOI) -> bool:
        return any(w in self._text(poi) for w in BREAKFAST_WORDS)

    def _suits(self, poi: CandidatePOI, meal_type: str) -> bool:
        if meal_type != "breakfast":
            return True
        text = self._text(poi)
        return not any(w in text.split() or w in poi.tags for w in HEAVY_CUISINE_WORDS)

    def pick_meal(
        self,
        meal_type: str,
        restaurants: Sequence[CandidatePOI],
        center: Optional[Coordinate],
        used: Set[str],
    ) -> Optional[CandidatePOI]:
        pool = [r for r in restaurants if (r.id or r.name) not in used and self._suits(r, meal_type)]
        if not pool:
            return None
        max_km = MEAL_MAX_DISTANCE_KM[meal_type]
        in_range: List[Tuple[float, CandidatePOI]] = []
        for r in pool:
            dist = distance_km(r.coord, center)
            if dist is not None and dist <= max_km:
                in_range.append(((self._meal_quality(r, meal_type)) / max(0.05, dist), r))
        if in_range:
            return max(in_range, key=lambda pair: pair[0])[1]
        # nothing close enough: best quality anywhere, cafes first for breakfast
        if meal_type == "breakfast":
            pool = [r for r in pool if self._is_breakfast_place(r)] or pool
        return max(pool, key=lambda r: self._meal_quality(r, meal_type))

    def assign_meals(
        self,
        frames: Sequence[DayFrame],
        day_activities: Dict[int, List[CandidatePOI]],
        restaurants: Sequence[CandidatePOI],
        lodging: Optional[CandidatePOI],
    ) -> Dict[int, Dict[str, CandidatePOI]]:
        used: Set[str] = set()
        meals: Dict[int, Dict[str, CandidatePOI]] = {}
        for frame in frames:
            center = barycenter(p.coord for p in day_activities.get(frame.day_number, []))
            if center is None and lodging is not None:
                center = lodging.coord
            picked: Dict[str, CandidatePOI] = {}
            for meal_type in frame.meals:
                # breakfast is taken near the lodging when there is one
                anchor = lodging.coord if meal_type == "breakfast" and lodging and has_coord(lodging.coord) else center
                choice = self.pick_meal(meal_type, restaurants, anchor, used)
                if choice is not None:
                    picked[meal_type] = choice
                    used.add(choice.id or choice.name)
            meals[frame.day_number] = picked
        return meals
