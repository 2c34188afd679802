"""Itinerary pipeline orchestration.

This module exposes :class:`ItineraryPipeline`, the only component that knows
the full stage sequence:

1. ``fetch``: ``ResearchAgent`` fans out to every provider concurrently.
2. ``dedup``: each category is filtered through its own seen set.
3. ``assign``: ``ScoringAgent`` ranks, clusters and schedules the days.
4. ``balance``: ``ItineraryAgent`` asks the language model to pace and narrate.
5. ``assemble``: ``QualityAgent`` merges, validates and prices the trip.

Each stage emits exactly one :class:`~workflows.state.PipelineEvent`.  The
whole sequence races a hard deadline; a heartbeat callback fires on a fixed
interval while it runs.  When the deadline wins, the work is cancelled, any
late stage output is discarded and :class:`DeadlineExceededError` is raised.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import config
from agents.itinerary_agent import ItineraryAgent
from agents.quality_agent import QualityAgent
from agents.research_agent import ResearchAgent
from agents.scoring_agent import ScoringAgent
from workflows.dedup import DedupOptions, DedupSeenSet, dedupe_candidates
from workflows.errors import DeadlineExceededError, GenerationError
from workflows.state import Itinerary, PipelineEvent, TripPreferences

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[PipelineEvent], Union[None, Awaitable[None]]]
HeartbeatCallback = Callable[[], Union[None, Awaitable[None]]]

STAGES = ("fetch", "dedup", "assign", "balance", "assemble")


async def _maybe_await(value: Any) -> None:
    if inspect.isawaitable(value):
        await value


@dataclass
class _RunContext:
    """Per-run mutable bookkeeping. Never shared between runs."""

    stage: str = "start"
    closed: bool = False


class ItineraryPipeline:
    """Coordinate one generation run across all agents."""

    def __init__(
        self,
        *,
        research_agent: Optional[ResearchAgent] = None,
        scoring_agent: Optional[ScoringAgent] = None,
        itinerary_agent: Optional[ItineraryAgent] = None,
        quality_agent: Optional[QualityAgent] = None,
        dedup_options: Optional[DedupOptions] = None,
        deadline_seconds: float = config.PIPELINE_DEADLINE_SECONDS,
        heartbeat_interval: float = config.HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self.research_agent = research_agent or ResearchAgent()
        self.scoring_agent = scoring_agent or ScoringAgent()
        self.itinerary_agent = itinerary_agent or ItineraryAgent()
        self.quality_agent = quality_agent or QualityAgent()
        self.dedup_options = dedup_options or DedupOptions()
        if deadline_seconds >= config.PLATFORM_MAX_DURATION_SECONDS:
            logger.warning(
                f"Deadline {deadline_seconds}s is not below the platform limit of "
                f"{config.PLATFORM_MAX_DURATION_SECONDS}s; clamping"
            )
            deadline_seconds = config.PLATFORM_MAX_DURATION_SECONDS - config.HEARTBEAT_INTERVAL_SECONDS
        self.deadline_seconds = deadline_seconds
        self.heartbeat_interval = heartbeat_interval

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        preferences: TripPreferences,
        on_progress: ProgressCallback,
        on_heartbeat: Optional[HeartbeatCallback] = None,
    ) -> Itinerary:
        """Generate one itinerary or raise :class:`GenerationError`."""
        ctx = _RunContext()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.deadline_seconds

        work = asyncio.create_task(self._generate(preferences, on_progress, ctx, deadline))
        heartbeat = (
            asyncio.create_task(self._heartbeat(on_heartbeat, ctx))
            if on_heartbeat is not None
            else None
        )
        try:
            done, _ = await asyncio.wait({work}, timeout=self.deadline_seconds)
            if work not in done:
                ctx.closed = True
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)
                logger.error(f"Deadline of {self.deadline_seconds:.0f}s exceeded during stage '{ctx.stage}'")
                raise DeadlineExceededError(
                    f"Generation exceeded the {self.deadline_seconds:.0f}s time limit during {ctx.stage}",
                    stage=ctx.stage,
                )
            try:
                return work.result()
            except GenerationError:
                raise
            except Exception as exc:
                logger.exception(f"Stage '{ctx.stage}' failed")
                raise GenerationError(f"Generation failed during {ctx.stage}: {exc}", stage=ctx.stage) from exc
        finally:
            ctx.closed = True
            if not work.done():
                work.cancel()
            if heartbeat is not None:
                heartbeat.cancel()
                await asyncio.gather(heartbeat, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _heartbeat(self, on_heartbeat: HeartbeatCallback, ctx: _RunContext) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if ctx.closed:
                return
            try:
                await _maybe_await(on_heartbeat())
            except Exception as exc:  # a broken listener must not stop the keepalive
                logger.warning(f"Heartbeat callback failed: {exc}")

    async def _emit(
        self,
        ctx: _RunContext,
        on_progress: ProgressCallback,
        stage: str,
        payload: Dict[str, Any],
        status: str = "completed",
    ) -> None:
        if ctx.closed:
            logger.info(f"Dropping late '{stage}' event; run already closed")
            return
        await _maybe_await(on_progress(PipelineEvent(stage=stage, status=status, payload=payload)))

    async def _generate(
        self,
        preferences: TripPreferences,
        on_progress: ProgressCallback,
        ctx: _RunContext,
        deadline: float,
    ) -> Itinerary:
        try:
            return await self._stages(preferences, on_progress, ctx, deadline)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._emit(ctx, on_progress, ctx.stage, {"error": str(exc)}, status="failed")
            raise

    async def _stages(
        self,
        preferences: TripPreferences,
        on_progress: ProgressCallback,
        ctx: _RunContext,
        deadline: float,
    ) -> Itinerary:
        logger.info(f"Generating {preferences.duration_days}-day trip {preferences.origin} -> {preferences.destination}")

        ctx.stage = "fetch"
        fetched = await self.research_agent.fetch_all(preferences)
        await self._emit(ctx, on_progress, "fetch", {
            "counts": fetched.counts(),
            "failed_sources": list(fetched.failures),
        })

        ctx.stage = "dedup"
        # duplicates are only compared within one category
        activities = dedupe_candidates(fetched.activities, DedupSeenSet(), self.dedup_options)
        restaurants = dedupe_candidates(fetched.restaurants, DedupSeenSet(), self.dedup_options)
        lodging = dedupe_candidates(fetched.lodging, DedupSeenSet(), self.dedup_options)
        await self._emit(ctx, on_progress, "dedup", {
            "kept": {
                "activities": len(activities.kept),
                "dining": len(restaurants.kept),
                "lodging": len(lodging.kept),
            },
            "dropped": len(activities.dropped) + len(restaurants.dropped) + len(lodging.dropped),
            "seen": len(activities.seen) + len(restaurants.seen) + len(lodging.seen),
        })

        ctx.stage = "assign"
        assignment = self.scoring_agent.assign(
            preferences,
            activities.kept,
            restaurants.kept,
            lodging.kept,
            fetched.transport,
        )
        await self._emit(ctx, on_progress, "assign", {
            "days": len(assignment.days),
            "activities": sum(len(pois) for pois in assignment.day_activities.values()),
            "lodging": assignment.lodging.name if assignment.lodging else None,
            "rejections": list(assignment.rejections),
        })

        ctx.stage = "balance"
        balance = await self.itinerary_agent.balance(preferences, assignment, deadline=deadline)
        await self._emit(ctx, on_progress, "balance", {
            "used_fallback": balance.used_fallback,
            "attempts": balance.attempts,
            "error": balance.error,
        })

        ctx.stage = "assemble"
        itinerary = await asyncio.to_thread(
            self.quality_agent.assemble,
            preferences,
            assignment,
            balance,
            provider_failures=fetched.failures,
        )
        await self._emit(ctx, on_progress, "assemble", {
            "quality_score": itinerary.quality_score,
            "total_cost": itinerary.total_cost,
            "currency": itinerary.currency,
            "warnings": list(itinerary.warnings),
            "excluded": list(itinerary.meta.get("excluded", [])),
        })
        logger.info(f"Itinerary {itinerary.id} ready (quality {itinerary.quality_score})")
        return itinerary
