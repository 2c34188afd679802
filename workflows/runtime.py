"""Turn a raw preferences payload into validated :class:`TripPreferences`."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from tools.geocoding import CityNormalizer
from workflows.errors import PreferencesValidationError
from workflows.schemas import GenerateRequest, missing_required_fields
from workflows.state import TripPreferences

logger = logging.getLogger(__name__)

_BUDGET_LEVELS = {"economic", "moderate", "comfort", "luxury"}
_PACES = {"relaxed", "moderate", "intensive"}


def _field_names(exc: ValidationError) -> List[str]:
    names = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        names.append(".".join(str(part) for part in loc) or "payload")
    return names


def build_preferences(payload: Optional[Dict[str, Any]], normalizer: Optional[CityNormalizer] = None) -> TripPreferences:
    """Validate ``payload`` and normalize its cities.

    Raises :class:`PreferencesValidationError` listing the offending fields
    before any generation work starts.
    """
    missing = missing_required_fields(payload)
    if missing:
        raise PreferencesValidationError(missing)

    try:
        request = GenerateRequest.model_validate(payload)
    except ValidationError as exc:
        fields = _field_names(exc)
        raise PreferencesValidationError(fields, f"Invalid fields: {', '.join(fields)}") from exc

    normalizer = normalizer or CityNormalizer()
    origin = normalizer.normalize(request.origin)
    destination = normalizer.normalize(request.destination)
    logger.info(f"Normalized cities: '{request.origin}' -> '{origin}', '{request.destination}' -> '{destination}'")

    budget_level = request.budget_level if request.budget_level in _BUDGET_LEVELS else None
    if request.budget_level and budget_level is None:
        logger.warning(f"Unknown budget level '{request.budget_level}', ignoring it")
    pace = request.pace.lower() if request.pace and request.pace.lower() in _PACES else "moderate"

    try:
        return TripPreferences(
            origin=origin,
            destination=destination,
            start_date=request.start_date,
            duration_days=request.duration_days,
            budget_level=budget_level,
            budget_custom=request.budget_custom,
            group_size=request.group_size,
            group_type=request.group_type,
            transport=(request.transport or "plane").lower(),
            activities=request.activities,
            pace=pace,
            must_see=request.must_see,
        )
    except ValidationError as exc:
        fields = _field_names(exc)
        raise PreferencesValidationError(fields, f"Invalid fields: {', '.join(fields)}") from exc
