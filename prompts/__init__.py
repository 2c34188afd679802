"""Prompt templates for the LLM-backed stages.

Prompts live next to this module as markdown files so they can be edited
without touching code.  Any prompt can be replaced at deploy time with the
environment variable ``ITINERARY_PROMPT_<NAME>``, holding either a path to a
file or the literal prompt text.
"""
from __future__ import annotations

import os
import string
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, FrozenSet, Optional

__all__ = ["PromptTemplate", "load_prompt_template", "render_prompt"]

_PROMPT_ROOT = Path(__file__).resolve().parent
_ENV_PREFIX = "ITINERARY_PROMPT_"


def _resolve_override(name: str) -> Optional[str]:
    override_value = os.getenv(_ENV_PREFIX + name.upper())
    if not override_value:
        return None

    override_path = Path(override_value)
    if override_path.is_file():
        return override_path.read_text(encoding="utf-8")
    return override_value


@dataclass(frozen=True)
class PromptTemplate:
    """``str.format`` template that names the placeholders it is missing."""

    name: str
    text: str

    @property
    def placeholders(self) -> FrozenSet[str]:
        return frozenset(
            field_name
            for _, field_name, _, _ in string.Formatter().parse(self.text)
            if field_name
        )

    def format(self, **kwargs: Any) -> str:
        missing = self.placeholders - kwargs.keys()
        if missing:
            raise KeyError(f"Prompt '{self.name}' is missing values for: {', '.join(sorted(missing))}")
        return self.text.format(**kwargs)


@lru_cache(maxsize=None)
def load_prompt_template(name: str, filename: str) -> PromptTemplate:
    """Load prompt ``name``, preferring an environment override over ``filename``."""
    override = _resolve_override(name)
    if override is not None:
        return PromptTemplate(name, override)

    path = _PROMPT_ROOT / filename
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found: {path}")
    return PromptTemplate(name, path.read_text(encoding="utf-8"))


def render_prompt(name: str, filename: str, **kwargs: Any) -> str:
    return load_prompt_template(name, filename).format(**kwargs)
