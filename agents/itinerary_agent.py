# agents/itinerary_agent.py
"""ItineraryAgent: LLM-assisted pacing and narration of an assigned plan.

The language model is an untrusted collaborator.  It receives the days as
already assigned by the scoring stage and may only reorder each day's
activities, theme the day and narrate it.  Its answer is accepted only when:

1. it parses as JSON (bare or inside a fenced block);
2. it validates against :class:`~workflows.schemas.BalancedPlan`;
3. every day with activities is present and its ``activity_order`` is a
   permutation of that day's activity ids.

Anything else triggers one more attempt if the deadline allows, then a
deterministic fallback built from the assignment itself.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

import config
from agents.scoring_agent import AssignmentResult
from prompts import load_prompt_template
from workflows.schedule import fmt_minutes, poi_key
from workflows.schemas import BalancedDay, BalancedPlan
from workflows.state import CandidatePOI, TripPreferences

logger = logging.getLogger(__name__)

# Below this many seconds left there is no point asking the model again
MIN_CALL_SECONDS = 1.0

_THEME_BY_TAG = {
    "museum": "Museums and culture",
    "art_gallery": "Art and galleries",
    "historical_landmark": "Historic landmarks",
    "church": "Churches and old streets",
    "place_of_worship": "Churches and old streets",
    "park": "Parks and open air",
    "beach": "Beach and seafront",
    "market": "Markets and local flavours",
    "shopping_mall": "Shopping",
    "zoo": "Family day out",
    "aquarium": "Family day out",
    "amusement_park": "Thrills and fun",
}


@dataclass
class BalanceResult:
    plan: BalancedPlan
    used_fallback: bool
    attempts: int
    error: Optional[str] = None


class ItineraryAgent:
    """Balance and narrate the day plan with Gemini, falling back deterministically."""

    def __init__(
        self,
        *,
        model_name: str = config.DEFAULT_MODEL_NAME,
        temperature: float = config.DEFAULT_TEMPERATURE,
        llm: Optional[Any] = None,
        call_timeout: float = config.BALANCE_LLM_TIMEOUT_SECONDS,
        max_attempts: int = 2,
    ) -> None:
        self.model_name = model_name
        self.temperature = temperature
        self.call_timeout = call_timeout
        self.max_attempts = max(1, max_attempts)
        self._llm = llm
        self._llm_disabled = False
        self._prompt_template = load_prompt_template("balance", "balance.md")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def balance(
        self,
        preferences: TripPreferences,
        assignment: AssignmentResult,
        deadline: Optional[float] = None,
    ) -> BalanceResult:
        """Ask the model for a balanced plan until ``deadline`` (event-loop time)."""
        day_ids = {
            day_number: [poi_key(p) for p in pois]
            for day_number, pois in assignment.day_activities.items()
        }
        llm = self._get_llm()
        if llm is None:
            return self._fallback(preferences, assignment, attempts=0, error="LLM not configured")

        messages = self._build_messages(preferences, assignment)
        loop = asyncio.get_running_loop()
        attempts = 0
        last_error: Optional[str] = None
        while attempts < self.max_attempts:
            timeout = self.call_timeout
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= MIN_CALL_SECONDS:
                    last_error = last_error or "no time left for the language model"
                    break
                timeout = min(timeout, remaining)

            attempts += 1
            try:
                response = await asyncio.wait_for(llm.ainvoke(messages), timeout=timeout)
                plan = self.parse_plan(self._content_text(response), day_ids)
                logger.info(f"Balanced plan accepted after {attempts} attempt(s)")
                return BalanceResult(plan=plan, used_fallback=False, attempts=attempts)
            except asyncio.TimeoutError:
                last_error = f"language model timed out after {timeout:.0f}s"
            except ValueError as exc:
                last_error = f"malformed plan: {exc}"
            except Exception as exc:  # provider client errors are not part of a stable API
                last_error = f"language model call failed: {exc}"
            logger.warning(f"Balancing attempt {attempts} rejected: {last_error}")

        return self._fallback(preferences, assignment, attempts=attempts, error=last_error)

    def parse_plan(self, text: str, day_ids: Dict[int, List[str]]) -> BalancedPlan:
        """Parse and check model output. Raises ValueError on anything unusable."""
        data = self._parse_llm_json(text)
        if data is None:
            raise ValueError("response is not JSON")
        plan = BalancedPlan.model_validate(data)

        by_day: Dict[int, BalancedDay] = {}
        for day in plan.days:
            if day.day_number not in day_ids:
                raise ValueError(f"unknown day {day.day_number}")
            if day.day_number in by_day:
                raise ValueError(f"day {day.day_number} appears twice")
            expected = day_ids[day.day_number]
            if sorted(day.activity_order) != sorted(expected):
                raise ValueError(f"day {day.day_number} activity_order is not a permutation of its activities")
            by_day[day.day_number] = day

        for day_number, ids in day_ids.items():
            if day_number not in by_day:
                if ids:
                    raise ValueError(f"day {day_number} is missing")
                by_day[day_number] = BalancedDay(day_number=day_number, theme="Free time", narrative="")

        return BalancedPlan(
            days=[by_day[n] for n in sorted(by_day)],
            day_order_reason=plan.day_order_reason,
        )

    # ------------------------------------------------------------------
    # LLM plumbing
    # ------------------------------------------------------------------

    def _get_llm(self) -> Optional[Any]:
        if self._llm is not None or self._llm_disabled:
            return self._llm
        api_key = config.get_google_api_key()
        if not api_key:
            logger.warning("GOOGLE_API_KEY not set; balancing will use the deterministic plan")
            self._llm_disabled = True
            return None
        self._llm = ChatGoogleGenerativeAI(
            model=self.model_name,
            temperature=self.temperature,
            google_api_key=api_key,
        )
        return self._llm

    def _build_messages(self, preferences: TripPreferences, assignment: AssignmentResult) -> List[Any]:
        days_payload = []
        for frame in assignment.frames:
            pois = assignment.day_activities.get(frame.day_number, [])
            days_payload.append({
                "day_number": frame.day_number,
                "date": frame.date.isoformat(),
                "available_from": fmt_minutes(frame.start),
                "available_until": fmt_minutes(frame.end),
                "activities": [self._describe(p) for p in pois],
            })
        prompt = self._prompt_template.format(
            destination=preferences.destination,
            duration_days=preferences.duration_days,
            group_size=preferences.group_size,
            group_type=preferences.group_type,
            pace=preferences.pace,
            interests=", ".join(preferences.activities) or "general sightseeing",
            days_json=json.dumps(days_payload, ensure_ascii=False, indent=2),
        )
        return [
            SystemMessage(content="You reply with strict JSON only."),
            HumanMessage(content=prompt),
        ]

    @staticmethod
    def _describe(poi: CandidatePOI) -> Dict[str, Any]:
        described: Dict[str, Any] = {
            "id": poi_key(poi),
            "name": poi.name,
            "tags": list(poi.tags[:3]),
            "duration_minutes": poi.duration_minutes,
        }
        if poi.coord is not None:
            described["lat"] = round(poi.coord.lat, 5)
            described["lng"] = round(poi.coord.lng, 5)
        return described

    @staticmethod
    def _content_text(response: Any) -> str:
        content = getattr(response, "content", response)
        if isinstance(content, (list, tuple)):
            parts = []
            for part in content:
                if isinstance(part, dict):
                    parts.append(str(part.get("text", "")))
                else:
                    parts.append(str(part))
            return "".join(parts)
        return str(content or "")

    def _parse_llm_json(self, text: str) -> Optional[Dict[str, Any]]:
        candidates = []
        fenced = re.findall(r"```(?:json)?\s*(.*?)```", text, flags=re.DOTALL)
        if fenced:
            candidates.extend(fenced)
        else:
            candidates.append(text)

        for candidate in candidates:
            candidate = candidate.strip()
            if not candidate:
                continue
            try:
                parsed = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed
        return None

    # ------------------------------------------------------------------
    # Deterministic fallback
    # ------------------------------------------------------------------

    def _fallback(
        self,
        preferences: TripPreferences,
        assignment: AssignmentResult,
        *,
        attempts: int,
        error: Optional[str],
    ) -> BalanceResult:
        logger.warning(f"Using deterministic balancing ({error})")
        return BalanceResult(
            plan=self.fallback_plan(preferences, assignment),
            used_fallback=True,
            attempts=attempts,
            error=error,
        )

    def fallback_plan(self, preferences: TripPreferences, assignment: AssignmentResult) -> BalancedPlan:
        days: List[BalancedDay] = []
        for frame in assignment.frames:
            pois = assignment.day_activities.get(frame.day_number, [])
            days.append(BalancedDay(
                day_number=frame.day_number,
                theme=self._theme(pois, preferences),
                narrative=self._narrative(pois),
                activity_order=[poi_key(p) for p in pois],
                start_time=fmt_minutes(frame.start),
            ))
        return BalancedPlan(days=days, day_order_reason="Days follow the geographic clustering of activities.")

    @staticmethod
    def _theme(pois: List[CandidatePOI], preferences: TripPreferences) -> str:
        if not pois:
            return "Arrival and free time"
        counts = Counter(tag for p in pois for tag in p.tags if tag in _THEME_BY_TAG)
        if counts:
            return _THEME_BY_TAG[counts.most_common(1)[0][0]]
        return f"Discovering {preferences.destination}"

    @staticmethod
    def _narrative(pois: List[CandidatePOI]) -> str:
        names = [p.name for p in pois]
        if not names:
            return "A light day to settle in and explore at your own pace."
        if len(names) == 1:
            return f"Take your time at {names[0]}."
        if len(names) == 2:
            return f"Start at {names[0]} and finish at {names[1]}."
        return f"Start at {names[0]}, continue to {', '.join(names[1:-1])} and finish at {names[-1]}."
