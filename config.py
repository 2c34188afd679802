"""Global configuration for the itinerary pipeline.

This module loads environment variables from the .env file and provides
centralized configuration for the entire application.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
# Look for .env in the project root directory
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


# ============================================================================
# Language Model Configuration
# ============================================================================

# Default model name for Gemini
DEFAULT_MODEL_NAME: str = os.getenv("DEFAULT_MODEL_NAME", "gemini-2.0-flash")

# Default temperature for LLM calls
DEFAULT_TEMPERATURE: float = float(os.getenv("DEFAULT_TEMPERATURE", "0.2"))

# Upper bound for a single balancing call (the pipeline deadline may cut it shorter)
BALANCE_LLM_TIMEOUT_SECONDS: float = float(os.getenv("BALANCE_LLM_TIMEOUT_SECONDS", "30"))


# ============================================================================
# Pipeline Timing
# ============================================================================

# Hard internal deadline, kept below the hosting platform's request ceiling
PIPELINE_DEADLINE_SECONDS: float = float(os.getenv("PIPELINE_DEADLINE_SECONDS", "285"))
PLATFORM_MAX_DURATION_SECONDS: float = float(os.getenv("PLATFORM_MAX_DURATION_SECONDS", "300"))

# Keepalive interval for the event stream
HEARTBEAT_INTERVAL_SECONDS: float = float(os.getenv("HEARTBEAT_INTERVAL_SECONDS", "10"))


# ============================================================================
# Deduplication Thresholds
# ============================================================================

DEDUP_TOKEN_OVERLAP: float = float(os.getenv("DEDUP_TOKEN_OVERLAP", "0.82"))
DEDUP_NEAR_DISTANCE_KM: float = float(os.getenv("DEDUP_NEAR_DISTANCE_KM", "0.35"))
DEDUP_CANONICAL_DISTANCE_KM: float = float(os.getenv("DEDUP_CANONICAL_DISTANCE_KM", "2.5"))


# ============================================================================
# Agent Configuration
# ============================================================================

# Research Agent defaults
RESEARCH_MAX_CONCURRENCY: int = int(os.getenv("RESEARCH_MAX_CONCURRENCY", "5"))
PROVIDER_RESULT_LIMIT: int = int(os.getenv("PROVIDER_RESULT_LIMIT", "20"))

# Amadeus environment: "test" or "production"
AMADEUS_HOSTNAME: str = os.getenv("AMADEUS_HOSTNAME", "production")

# Budget Agent defaults (used when a provider has no price)
DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "EUR")
BUDGET_DEFAULT_HOTEL_RATE: float = float(os.getenv("BUDGET_DEFAULT_HOTEL_RATE", "120.0"))
BUDGET_MEAL_PER_PERSON: float = float(os.getenv("BUDGET_MEAL_PER_PERSON", "25.0"))
BUDGET_ACTIVITY_PER_STOP: float = float(os.getenv("BUDGET_ACTIVITY_PER_STOP", "15.0"))
BUDGET_TRANSPORT_LEG: float = float(os.getenv("BUDGET_TRANSPORT_LEG", "120.0"))


# ============================================================================
# Streaming / Application Configuration
# ============================================================================

# Terminal error strings are cut to this many characters
ERROR_MESSAGE_MAX_LENGTH: int = int(os.getenv("ERROR_MESSAGE_MAX_LENGTH", "300"))

# FastAPI/Backend
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))

# CORS Configuration
CORS_ORIGINS: List[str] = os.getenv("CORS_ORIGINS", "*").split(",") if os.getenv("CORS_ORIGINS") else ["*"]


# ============================================================================
# Geocoding
# ============================================================================

NOMINATIM_URL: str = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org")
GEOCODER_USER_AGENT: str = os.getenv("GEOCODER_USER_AGENT", "itinerary-pipeline/1.0")


# ============================================================================
# API Keys
# ============================================================================

def get_google_api_key() -> Optional[str]:
    """Get Google API key (Gemini) from the environment."""
    return os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")


def get_google_maps_api_key() -> Optional[str]:
    """Get Google Maps API key from the environment."""
    return os.getenv("GOOGLE_MAPS_API_KEY") or os.getenv("GOOGLE_PLACES_API_KEY")


def get_amadeus_api_key() -> Optional[str]:
    return os.getenv("AMADEUS_API_KEY")


def get_amadeus_api_secret() -> Optional[str]:
    return os.getenv("AMADEUS_API_SECRET")


# ============================================================================
# Validation
# ============================================================================

def validate_api_keys() -> List[str]:
    """Validate that required API keys are present. Returns list of missing keys."""
    missing = []

    if not get_google_maps_api_key():
        missing.append("GOOGLE_MAPS_API_KEY")

    if not get_google_api_key():
        missing.append("GOOGLE_API_KEY or GEMINI_API_KEY")

    if not get_amadeus_api_key() or not get_amadeus_api_secret():
        missing.append("AMADEUS_API_KEY/AMADEUS_API_SECRET")

    return missing
