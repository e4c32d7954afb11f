"""Runtime configuration for the audit pipeline.

Everything is read from the environment (``.env`` is loaded by the API and
the worker at start-up) with safe defaults, so a bare checkout runs against
a local SQLite file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./audit.db").strip()


def is_debug() -> bool:
    return os.getenv("DEBUG", "false").lower() == "true"


@dataclass(frozen=True)
class AuditConfig:
    """Models, timeouts and worker settings for one process."""

    model: str = "gpt-4.1"
    research_model: str = "gpt-4.1"
    composer_model: str = "gpt-4.1"
    temperature: float = 0.2

    # Per external call (seconds)
    research_timeout: float = 45.0
    extraction_timeout: float = 45.0
    composition_timeout: float = 60.0

    # Whole-stage guard (seconds)
    stage_timeout: float = 180.0

    extraction_max_tokens: int = 6000
    composition_max_tokens: int = 8000

    poll_interval: float = 2.0
    stale_after: float = 600.0

    @classmethod
    def from_env(cls) -> "AuditConfig":
        model = os.getenv("OPENAI_MODEL", "gpt-4.1").strip()
        return cls(
            model=model,
            research_model=os.getenv("OPENAI_RESEARCH_MODEL", model).strip(),
            composer_model=os.getenv("OPENAI_COMPOSER_MODEL", model).strip(),
            temperature=_env_float("OPENAI_TEMPERATURE", 0.2),
            research_timeout=_env_float("AUDIT_RESEARCH_TIMEOUT", 45.0),
            extraction_timeout=_env_float("AUDIT_EXTRACTION_TIMEOUT", 45.0),
            composition_timeout=_env_float("AUDIT_COMPOSITION_TIMEOUT", 60.0),
            stage_timeout=_env_float("AUDIT_STAGE_TIMEOUT", 180.0),
            extraction_max_tokens=_env_int("AUDIT_EXTRACTION_MAX_TOKENS", 6000),
            composition_max_tokens=_env_int("AUDIT_COMPOSITION_MAX_TOKENS", 8000),
            poll_interval=_env_float("WORKER_POLL_INTERVAL", 2.0),
            stale_after=_env_float("WORKER_STALE_AFTER", 600.0),
        )
