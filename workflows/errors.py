"""Exception types raised by the itinerary pipeline."""

from __future__ import annotations

from typing import Iterable, List, Optional


class GenerationError(RuntimeError):
    """A generation run failed and produced no itinerary."""

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage


class DeadlineExceededError(GenerationError):
    """The hard deadline fired before the run finished."""


class PreferencesValidationError(ValueError):
    """Raised before a run starts when required preference fields are missing."""

    def __init__(self, missing_fields: Iterable[str], message: Optional[str] = None) -> None:
        self.missing_fields: List[str] = list(missing_fields)
        if message is None:
            message = "Missing required fields: " + ", ".join(self.missing_fields)
        super().__init__(message)


class FramingError(ValueError):
    """A stream frame could not be decoded."""
