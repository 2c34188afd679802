"""Tests for ResearchAgent."""

from __future__ import annotations

import asyncio
import threading
import time

from agents import research_agent
from agents.research_agent import ResearchAgent


def test_research_agent_runs_every_adapter(preferences, make_poi):
    """Every adapter is called once and lands in its bucket."""
    calls = []

    def adapter(name, category):
        def _run(prefs):
            calls.append(name)
            return [make_poi(f"{name} result", category=category, id=name)]
        return _run

    agent = ResearchAgent({
        "activities": adapter("activities", "activity"),
        "dining": adapter("dining", "restaurant"),
        "lodging": adapter("lodging", "lodging"),
        "transport": adapter("transport", "transport"),
    })
    result = asyncio.run(agent.fetch_all(preferences))

    assert sorted(calls) == ["activities", "dining", "lodging", "transport"]
    assert result.counts() == {"activities": 1, "dining": 1, "lodging": 1, "transport": 1}
    assert result.failures == []
    assert not result.empty


def test_failed_adapter_contributes_nothing(preferences, make_poi):
    def broken(prefs):
        raise RuntimeError("Places API key rejected")

    agent = ResearchAgent({
        "activities": lambda prefs: [make_poi("Sagrada Familia")],
        "dining": broken,
    })
    result = asyncio.run(agent.fetch_all(preferences))

    assert [p.name for p in result.activities] == ["Sagrada Familia"]
    assert result.restaurants == []
    assert result.failures == ["dining"]


def test_every_adapter_failing_still_returns(preferences):
    def broken(prefs):
        raise ValueError("Missing GOOGLE_MAPS_API_KEY.")

    agent = ResearchAgent({name: broken for name in research_agent.CATEGORIES})
    result = asyncio.run(agent.fetch_all(preferences))

    assert result.empty
    assert sorted(result.failures) == sorted(research_agent.CATEGORIES)


def test_transient_errors_are_retried(preferences, make_poi):
    attempts = []

    def flaky(prefs):
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("upstream returned 503")
        return [make_poi("Park Guell")]

    result = asyncio.run(ResearchAgent({"activities": flaky}).fetch_all(preferences))

    assert len(attempts) == 2
    assert [p.name for p in result.activities] == ["Park Guell"]


def test_concurrency_is_bounded(preferences):
    active = []
    peak = []
    lock = threading.Lock()

    def slow(prefs):
        with lock:
            active.append(1)
            peak.append(len(active))
        time.sleep(0.05)
        with lock:
            active.pop()
        return []

    agent = ResearchAgent({name: slow for name in research_agent.CATEGORIES}, max_concurrency=2)
    asyncio.run(agent.fetch_all(preferences))

    assert max(peak) <= 2


def test_retryable_error_detection():
    assert ResearchAgent._is_retryable_error(RuntimeError("request timed out"))
    assert not ResearchAgent._is_retryable_error(ValueError("Missing GOOGLE_MAPS_API_KEY."))


def test_transport_adapter_skips_non_flight_modes(preferences, monkeypatch):
    monkeypatch.setattr(research_agent, "search_flights", lambda *a, **kw: (_ for _ in ()).throw(AssertionError))
    prefs = preferences.model_copy(update={"transport": "train"})
    assert research_agent.fetch_transport(prefs) == []


def test_dining_adapter_merges_breakfast_results(preferences, monkeypatch, make_poi):
    def fake_search(city, query=None, limit=20, **kw):
        if query:
            return [make_poi("Granja Viader", id="g", category="restaurant")]
        return [make_poi("Cal Pep", id="c", category="restaurant"), make_poi("Granja Viader", id="g", category="restaurant")]

    monkeypatch.setattr(research_agent, "search_restaurants", fake_search)
    assert [p.id for p in research_agent.fetch_dining(preferences)] == ["g", "c"]
