"""Tracks where the traveler physically is over the trip timeline.

The tracker is a small state machine over ``Home | Transit | City``.  It only
moves on two events, :meth:`LocationTracker.board_flight` and
:meth:`LocationTracker.land_flight`, and answers one question: may an
activity located in a given city be scheduled right now?
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

logger = logging.getLogger(__name__)


def normalize_city_key(city: Optional[str]) -> str:
    return (city or "").strip().casefold()


@dataclass(frozen=True)
class Home:
    city: str


@dataclass(frozen=True)
class Transit:
    origin: str
    destination: str


@dataclass(frozen=True)
class City:
    city: str
    arrived_at: Optional[datetime] = None


LocationState = Union[Home, Transit, City]


@dataclass(frozen=True)
class LocationCheck:
    valid: bool
    reason: Optional[str] = None


class LocationTracker:
    """Geographic consistency validator for a single generation run."""

    def __init__(self, origin_city: str) -> None:
        self._state: LocationState = Home(normalize_city_key(origin_city))
        self.history: List[LocationState] = [self._state]

    @property
    def state(self) -> LocationState:
        return self._state

    @property
    def current_city(self) -> Optional[str]:
        """Normalized city the traveler can do things in, or None."""
        if isinstance(self._state, City):
            return self._state.city
        return None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def board_flight(self, origin: str, destination: str) -> None:
        self._transition(Transit(normalize_city_key(origin), normalize_city_key(destination)))

    def land_flight(self, destination: str, time: Optional[datetime] = None) -> None:
        self._transition(City(normalize_city_key(destination), time))

    def _transition(self, new_state: LocationState) -> None:
        logger.debug(f"Location {self._state} -> {new_state}")
        self._state = new_state
        self.history.append(new_state)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, activity_name: str, activity_city: Optional[str]) -> LocationCheck:
        state = self._state
        if isinstance(state, Home):
            return LocationCheck(
                False,
                f'Cannot schedule "{activity_name}" before departure: the traveler is still at home in {state.city}',
            )
        if isinstance(state, Transit):
            return LocationCheck(
                False,
                f'Cannot schedule "{activity_name}" while in transit from {state.origin} to {state.destination}',
            )
        if isinstance(state, City):
            if normalize_city_key(activity_city) == state.city:
                return LocationCheck(True)
            return LocationCheck(
                False,
                f'"{activity_name}" is in {(activity_city or "an unknown city").strip()}, '
                f"but the traveler is in {state.city}",
            )
        raise TypeError(f"Unknown location state: {state!r}")
