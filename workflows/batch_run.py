#!/usr/bin/env python3
"""
workflows/batch_run.py

Run a batch of trip requests through the ItineraryPipeline and save each
generated itinerary to ``itinerary_<id>.json`` for evaluation.

The input file holds a JSON list of request payloads (the same shape the
``/generate`` endpoint accepts). An optional ``idx`` key on each payload
lets you pick a subset.

Usage:
    python -m workflows.batch_run requests.json
    python -m workflows.batch_run requests.json --indices 2 3 --out generated_plans
"""

import argparse
import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder

from workflows.errors import GenerationError, PreferencesValidationError
from workflows.runtime import build_preferences
from workflows.state import PipelineEvent
from workflows.workflow import ItineraryPipeline

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = "generated_plans"


def load_requests(path: str) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of request payloads")
    return data


def save_itinerary(itinerary_data: Dict[str, Any], out_dir: str) -> str:
    """Write one itinerary and return its path."""
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, f"itinerary_{itinerary_data['id']}.json")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(itinerary_data, f, indent=2, ensure_ascii=False)
    return path


def _print_event(event: PipelineEvent) -> None:
    marker = "✅" if event.status == "completed" else "❌"
    print(f"      {marker} {event.stage}")


async def run_single_request(
    payload: Dict[str, Any],
    pipeline: ItineraryPipeline,
    out_dir: str,
) -> Optional[str]:
    """Run one payload; return the saved file path or None on failure."""
    idx = payload.get("idx", "?")
    print(f"\n=== Running request #{idx}: {payload.get('origin')} -> {payload.get('destination')} ===")

    try:
        preferences = build_preferences(payload)
    except PreferencesValidationError as exc:
        print(f"      ⚠️  Invalid request #{idx}: {exc}")
        return None

    try:
        itinerary = await pipeline.run(preferences, _print_event)
    except GenerationError as exc:
        print(f"      ❌ Generation failed for request #{idx}: {exc}")
        logger.warning(f"Request #{idx} failed at stage {exc.stage}: {exc}")
        return None

    path = save_itinerary(jsonable_encoder(itinerary), out_dir)
    print(f"      💾 Saved itinerary to {path} (quality {itinerary.quality_score})")
    return path


async def run_batch(
    payloads: List[Dict[str, Any]],
    out_dir: str = DEFAULT_OUTPUT_DIR,
    pipeline: Optional[ItineraryPipeline] = None,
) -> List[Optional[str]]:
    """Run payloads one after another. A failed request never stops the batch."""
    pipeline = pipeline or ItineraryPipeline()
    results = []
    for payload in payloads:
        results.append(await run_single_request(payload, pipeline, out_dir))
    return results


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Batch run itinerary requests.")
    parser.add_argument("requests", help="JSON file with a list of request payloads")
    parser.add_argument(
        "--indices",
        type=int,
        nargs="+",
        help="Only run payloads whose 'idx' is listed (e.g. 2 3 4)",
    )
    parser.add_argument("--out", default=DEFAULT_OUTPUT_DIR, help="Output directory")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    all_requests = load_requests(args.requests)
    if args.indices:
        to_run = [p for p in all_requests if p.get("idx") in args.indices]
    else:
        to_run = all_requests

    print(f"Found {len(to_run)} requests to run.")
    results = asyncio.run(run_batch(to_run, args.out))
    failed = sum(1 for path in results if path is None)
    print(f"\nDone: {len(results) - failed} saved, {failed} failed.")
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
