"""End-to-end tests for ItineraryPipeline with offline agents."""

from __future__ import annotations

import asyncio
import json

import pytest

import config
from agents.itinerary_agent import ItineraryAgent
from agents.quality_agent import QualityAgent
from agents.research_agent import FetchResult
from workflows.errors import DeadlineExceededError, GenerationError
from workflows.streaming import stream_generation
from workflows.workflow import STAGES, ItineraryPipeline, _RunContext


class OfflineLLM:
    async def ainvoke(self, messages):
        raise RuntimeError("offline")


class FakeResearch:
    def __init__(self, result):
        self.result = result

    async def fetch_all(self, preferences):
        return self.result


class SlowResearch:
    async def fetch_all(self, preferences):
        await asyncio.sleep(10)


class BrokenScoring:
    def assign(self, *args, **kwargs):
        raise RuntimeError("clustering exploded")


def _pipeline(research, **kwargs):
    kwargs.setdefault("itinerary_agent", ItineraryAgent(llm=OfflineLLM()))
    kwargs.setdefault("quality_agent", QualityAgent(fallback_resolver=None))
    return ItineraryPipeline(research_agent=research, **kwargs)


@pytest.fixture
def fetched(barcelona_candidates):
    activities = barcelona_candidates["activities"]
    return FetchResult(
        # the same place twice, as two providers would return it
        activities=activities + [activities[0]],
        restaurants=barcelona_candidates["restaurants"],
        lodging=barcelona_candidates["lodging"],
        transport=[],
        failures=["transport"],
    )


def test_run_emits_one_event_per_stage(preferences, fetched):
    events = []
    itinerary = asyncio.run(_pipeline(FakeResearch(fetched)).run(preferences, events.append))

    assert [e.stage for e in events] == list(STAGES)
    assert all(e.status == "completed" for e in events)
    assert events[0].payload["failed_sources"] == ["transport"]
    assert events[1].payload["dropped"] == 1
    assert events[3].payload["used_fallback"] is True
    assert itinerary.meta["provider_failures"] == ["transport"]
    assert len(itinerary.days) == preferences.duration_days


def test_concurrent_runs_do_not_share_seen_sets(preferences, fetched):
    pipeline = _pipeline(FakeResearch(fetched))

    async def both():
        first, second = [], []
        await asyncio.gather(
            pipeline.run(preferences, first.append),
            pipeline.run(preferences, second.append),
        )
        return first, second

    first, second = asyncio.run(both())
    assert first[1].payload["kept"] == second[1].payload["kept"]
    assert first[1].payload["kept"]["activities"] == 10


def test_stage_failure_is_reported_and_raised(preferences, fetched):
    events = []
    pipeline = _pipeline(FakeResearch(fetched), scoring_agent=BrokenScoring())

    with pytest.raises(GenerationError) as exc_info:
        asyncio.run(pipeline.run(preferences, events.append))

    assert exc_info.value.stage == "assign"
    assert "clustering exploded" in str(exc_info.value)
    assert [(e.stage, e.status) for e in events] == [
        ("fetch", "completed"),
        ("dedup", "completed"),
        ("assign", "failed"),
    ]


def test_deadline_fires_after_heartbeats(preferences):
    events, heartbeats = [], []
    pipeline = _pipeline(SlowResearch(), deadline_seconds=0.3, heartbeat_interval=0.05)

    with pytest.raises(DeadlineExceededError) as exc_info:
        asyncio.run(pipeline.run(preferences, events.append, lambda: heartbeats.append(1)))

    assert exc_info.value.stage == "fetch"
    assert len(heartbeats) >= 3
    assert events == []


def test_deadline_stream_ends_with_exactly_one_error(preferences):
    pipeline = _pipeline(SlowResearch(), deadline_seconds=0.3, heartbeat_interval=0.05)

    async def collect():
        return [frame async for frame in stream_generation(pipeline, preferences)]

    messages = [json.loads(frame[len("data: "):]) for frame in asyncio.run(collect())]
    statuses = [m["status"] for m in messages]

    assert statuses.count("generating") >= 3
    assert statuses[-1] == "error"
    assert statuses.count("error") == 1
    assert "done" not in statuses
    assert "time limit" in messages[-1]["error"]


def test_events_after_close_are_dropped(preferences):
    events = []
    pipeline = _pipeline(SlowResearch())
    asyncio.run(pipeline._emit(_RunContext(closed=True), events.append, "balance", {"late": True}))
    assert events == []


def test_async_progress_callbacks_are_awaited(preferences, fetched):
    events = []

    async def on_progress(event):
        await asyncio.sleep(0)
        events.append(event.stage)

    asyncio.run(_pipeline(FakeResearch(fetched)).run(preferences, on_progress))
    assert events == list(STAGES)


def test_restaurant_named_after_a_hotel_keeps_the_hotel(preferences, barcelona_candidates, make_poi):
    hotel_restaurant = make_poi(
        "Hotel Casa Fuster Restaurant", 41.3989, 2.1572, id="fuster-restaurant", category="restaurant",
        address="Passeig de Gracia 132, Barcelona",
    )
    fetched = FetchResult(
        activities=barcelona_candidates["activities"],
        restaurants=barcelona_candidates["restaurants"] + [hotel_restaurant],
        lodging=barcelona_candidates["lodging"],
        transport=[],
        failures=[],
    )
    events = []

    asyncio.run(_pipeline(FakeResearch(fetched)).run(preferences, events.append))

    dedup = events[1].payload
    assert dedup["kept"] == {"activities": 10, "dining": 7, "lodging": 4}
    assert dedup["dropped"] == 0


def test_deadline_is_kept_below_the_platform_limit(fetched):
    pipeline = _pipeline(FakeResearch(fetched), deadline_seconds=config.PLATFORM_MAX_DURATION_SECONDS + 60)
    assert pipeline.deadline_seconds < config.PLATFORM_MAX_DURATION_SECONDS
    assert _pipeline(FakeResearch(fetched), deadline_seconds=120).deadline_seconds == 120
