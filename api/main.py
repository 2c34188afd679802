"""FastAPI application exposing the itinerary generation stream."""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Any, Dict

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

import config
from tools.geocoding import CityNormalizer
from workflows.errors import PreferencesValidationError
from workflows.runtime import build_preferences
from workflows.streaming import stream_generation
from workflows.workflow import ItineraryPipeline

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Itinerary Pipeline API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_pipeline() -> ItineraryPipeline:
    return ItineraryPipeline()


@lru_cache(maxsize=1)
def get_normalizer() -> CityNormalizer:
    return CityNormalizer()


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/generate")
async def generate(
    payload: Dict[str, Any] = Body(...),
    pipeline: ItineraryPipeline = Depends(get_pipeline),
    normalizer: CityNormalizer = Depends(get_normalizer),
) -> StreamingResponse:
    # validation happens before the stream opens so bad input gets a plain 400
    try:
        preferences = await asyncio.to_thread(build_preferences, payload, normalizer)
    except PreferencesValidationError as exc:
        logger.info(f"Rejected generation request: {exc}")
        raise HTTPException(
            status_code=400,
            detail={"error": str(exc), "missing_fields": exc.missing_fields},
        ) from exc

    return StreamingResponse(
        stream_generation(pipeline, preferences),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)
