"""Tests for the traveler location state machine."""

from __future__ import annotations

from datetime import datetime

import pytest

from workflows.location import City, Home, LocationTracker, Transit


def test_starts_at_home_and_rejects_activities():
    tracker = LocationTracker("Paris")
    assert tracker.state == Home("paris")
    check = tracker.validate("Sagrada Familia", "Barcelona")
    assert not check.valid
    assert "before departure" in check.reason


def test_rejects_while_in_transit():
    tracker = LocationTracker("Paris")
    tracker.board_flight("Paris", "Barcelona")
    assert tracker.state == Transit("paris", "barcelona")
    check = tracker.validate("Sagrada Familia", "Barcelona")
    assert not check.valid
    assert "in transit" in check.reason


def test_outbound_scenario():
    tracker = LocationTracker("Paris")
    tracker.board_flight("Paris", "Barcelona")
    tracker.land_flight("Barcelona", datetime(2025, 6, 10, 12, 30))

    assert tracker.validate("Sagrada Familia", "Barcelona").valid
    assert tracker.validate("Sagrada Familia", "  barcelona ").valid

    check = tracker.validate("Prado Museum", "Madrid")
    assert not check.valid
    assert "Madrid" in check.reason


def test_after_return_flight_destination_activities_fail():
    tracker = LocationTracker("Paris")
    tracker.board_flight("Paris", "Barcelona")
    tracker.land_flight("Barcelona")
    tracker.board_flight("Barcelona", "Paris")
    tracker.land_flight("Paris")

    check = tracker.validate("Park Guell", "Barcelona")
    assert not check.valid
    assert "Barcelona" in check.reason
    assert "paris" in check.reason


def test_history_records_every_state():
    tracker = LocationTracker("Paris")
    tracker.board_flight("Paris", "Barcelona")
    tracker.land_flight("Barcelona")
    assert [type(s) for s in tracker.history] == [Home, Transit, City]
    assert tracker.current_city == "barcelona"


def test_missing_activity_city_is_rejected():
    tracker = LocationTracker("Paris")
    tracker.land_flight("Barcelona")
    check = tracker.validate("Somewhere", None)
    assert not check.valid
    assert "unknown city" in check.reason


def test_unknown_state_raises():
    tracker = LocationTracker("Paris")
    tracker._state = "nowhere"
    with pytest.raises(TypeError):
        tracker.validate("X", "Paris")
