"""Runtime settings for PillSight."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class Settings:
    store_backend: str = "inmemory"
    sqlite_path: str = "pillsight.db"
    google_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash-001"
    gemini_base_url: str = DEFAULT_GEMINI_BASE_URL
    speech_api_key: str | None = None
    search_limit: int = 5
    semantic_min_similarity: float = 0.0
    explanations_enabled: bool = True
    explanation_timeout_seconds: float = 20.0
    http_timeout_seconds: float = 30.0


def load_settings() -> Settings:
    google_api_key = os.getenv("PILLSIGHT_GOOGLE_API_KEY") or None
    return Settings(
        store_backend=os.getenv("PILLSIGHT_STORE_BACKEND", "inmemory").lower(),
        sqlite_path=os.getenv("PILLSIGHT_SQLITE_PATH", "pillsight.db"),
        google_api_key=google_api_key,
        gemini_model=os.getenv("PILLSIGHT_GEMINI_MODEL", "gemini-2.0-flash-001"),
        gemini_base_url=os.getenv("PILLSIGHT_GEMINI_BASE_URL", DEFAULT_GEMINI_BASE_URL),
        speech_api_key=os.getenv("PILLSIGHT_SPEECH_API_KEY") or google_api_key,
        search_limit=int(os.getenv("PILLSIGHT_SEARCH_LIMIT", "5")),
        semantic_min_similarity=float(os.getenv("PILLSIGHT_SEMANTIC_MIN_SIMILARITY", "0.0")),
        explanations_enabled=_env_bool("PILLSIGHT_EXPLANATIONS_ENABLED", True),
        explanation_timeout_seconds=float(
            os.getenv("PILLSIGHT_EXPLANATION_TIMEOUT_SECONDS", "20")
        ),
        http_timeout_seconds=float(os.getenv("PILLSIGHT_HTTP_TIMEOUT_SECONDS", "30")),
    )
