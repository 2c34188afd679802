"""Pydantic schemas for request payloads and structured LLM outputs."""

from __future__ import annotations

from datetime import date
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

REQUIRED_FIELDS = ("origin", "destination", "startDate")


# ============================================================================
# Generation Request Schema
# ============================================================================

class GenerateRequest(BaseModel):
    """Raw preferences payload as sent by clients (camelCase accepted)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    origin: Optional[str] = None
    destination: Optional[str] = None
    start_date: Optional[date] = Field(None, alias="startDate")
    duration_days: int = Field(3, ge=1, le=30, alias="durationDays")
    budget_level: Optional[str] = Field(None, alias="budgetLevel")
    budget_custom: Optional[float] = Field(None, ge=0, alias="budgetCustom")
    group_size: int = Field(1, ge=1, alias="groupSize")
    group_type: str = Field("solo", alias="groupType")
    transport: str = "plane"
    activities: Optional[Union[str, List[str]]] = None
    pace: str = "moderate"
    must_see: Optional[str] = Field(None, alias="mustSee")

    @field_validator("origin", "destination", "must_see", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("budget_level", mode="before")
    @classmethod
    def normalize_budget_level(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        level = str(v).strip().lower()
        # accepted aliases seen from older clients
        return {"budget": "economic", "cheap": "economic", "mid": "moderate", "premium": "comfort"}.get(level, level)


def missing_required_fields(payload: Any) -> List[str]:
    """Names of required fields absent or blank in a raw payload."""
    payload = payload if isinstance(payload, dict) else {}
    missing = []
    for name in REQUIRED_FIELDS:
        snake = "start_date" if name == "startDate" else name
        value = payload.get(name, payload.get(snake))
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing


# ============================================================================
# Balancing Output Schema
# ============================================================================

class BalancedDay(BaseModel):
    day_number: int = Field(..., ge=1)
    theme: str = Field(..., min_length=1)
    narrative: str = ""
    activity_order: List[str] = Field(default_factory=list)
    start_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    is_day_trip: bool = False


class BalancedPlan(BaseModel):
    days: List[BalancedDay] = Field(..., min_length=1)
    day_order_reason: Optional[str] = None
