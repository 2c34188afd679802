"""Minimal client for the ``/generate`` event stream."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import httpx

import config
from workflows.errors import PreferencesValidationError
from workflows.streaming import read_stream

logger = logging.getLogger(__name__)


def generate_trip(
    payload: Dict[str, Any],
    *,
    base_url: str = "http://localhost:8000",
    on_message: Optional[Callable[[Dict[str, Any]], None]] = None,
    client: Optional[httpx.Client] = None,
    timeout: float = config.PLATFORM_MAX_DURATION_SECONDS + 10,
) -> Dict[str, Any]:
    """POST ``payload`` and block until the stream's terminal frame.

    Returns the itinerary dict. Raises :class:`PreferencesValidationError`
    for a 400 answer and :class:`~workflows.errors.GenerationError` when the
    stream ends in an error.
    """
    owns_client = client is None
    client = client or httpx.Client(base_url=base_url, timeout=timeout)
    try:
        with client.stream("POST", "/generate", json=payload) as response:
            if response.status_code == 400:
                response.read()
                detail = (response.json() or {}).get("detail") or {}
                raise PreferencesValidationError(detail.get("missing_fields") or [], detail.get("error"))
            response.raise_for_status()
            return read_stream(response.iter_bytes(), on_message=on_message)
    finally:
        if owns_client:
            client.close()
