"""Extraction stage — research transcript → ``ExtractedData``.

A small explicit state machine:

    ATTEMPT_1 ──ok──────────────────────────▶ SUCCEEDED
        │ bad JSON / invalid shape / call failed
        ▼
    REPAIR_ATTEMPT_2 ──ok───────────────────▶ SUCCEEDED
        │ failed again
        ▼
    FALLBACK  (empty competitors + evidence)

The stage never raises for model problems; the job always gets a valid
``ExtractedData`` to benchmark.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from ...config import AuditConfig
from ...schemas.extraction_schema import ExtractedData
from ...services.openai_client import GenerativeClient, safe_json_parse
from .prompts import build_extractor_prompt, build_repair_prompt
from .timing import with_timeout

logger = logging.getLogger(__name__)


class ExtractionState(str, Enum):
    ATTEMPT_1 = "attempt_1"
    REPAIR_ATTEMPT_2 = "repair_attempt_2"
    SUCCEEDED = "succeeded"
    FALLBACK = "fallback"


@dataclass
class ExtractionOutcome:
    data: ExtractedData
    state: ExtractionState
    attempts: int
    errors: list[str] = field(default_factory=list)

    def diagnostics(self) -> dict:
        return {
            "state": self.state.value,
            "attempts": self.attempts,
            "competitors": len(self.data.competitors),
            "evidence": len(self.data.evidence),
            "errors": self.errors,
        }


def parse_extracted(raw: Optional[str]) -> tuple[Optional[ExtractedData], Optional[str]]:
    """Parse and validate model text. Returns (data, None) or (None, problem)."""
    parsed = safe_json_parse(raw)
    if parsed is None:
        return None, "response was not a JSON object"
    try:
        return ExtractedData.model_validate(parsed), None
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()))
        return None, f"schema validation failed at {where or '<root>'}: {first.get('msg', exc)}"


async def _attempt(
    client: GenerativeClient,
    prompt: str,
    *,
    label: str,
    config: AuditConfig,
) -> tuple[Optional[ExtractedData], Optional[str]]:
    try:
        result = await with_timeout(
            client.generate_json(prompt, model=config.model, max_output_tokens=config.extraction_max_tokens),
            config.extraction_timeout,
            label,
        )
    except Exception as exc:
        return None, f"call failed: {exc}"
    return parse_extracted(result.text)


async def run_extraction(
    client: GenerativeClient,
    transcript: str,
    *,
    config: AuditConfig,
) -> ExtractionOutcome:
    """Convert the research transcript into validated ``ExtractedData``."""
    state = ExtractionState.ATTEMPT_1
    attempts = 0
    errors: list[str] = []
    problem = ""

    while True:
        if state is ExtractionState.ATTEMPT_1:
            attempts += 1
            data, problem = await _attempt(
                client, build_extractor_prompt(transcript), label="Extractor", config=config
            )
            if data is not None:
                state = ExtractionState.SUCCEEDED
                break
            errors.append(f"attempt 1: {problem}")
            logger.warning("[EXTRACT] Attempt 1 failed (%s) — sending repair prompt", problem)
            state = ExtractionState.REPAIR_ATTEMPT_2

        elif state is ExtractionState.REPAIR_ATTEMPT_2:
            attempts += 1
            data, problem = await _attempt(
                client, build_repair_prompt(transcript, problem), label="Extractor repair", config=config
            )
            if data is not None:
                state = ExtractionState.SUCCEEDED
                break
            errors.append(f"attempt 2: {problem}")
            logger.warning("[EXTRACT] Repair attempt failed (%s) — using empty evidence", problem)
            state = ExtractionState.FALLBACK
            data = ExtractedData.empty()
            break

    logger.info(
        "[EXTRACT] %s after %d attempt(s): %d competitors, %d evidence items",
        state.value, attempts, len(data.competitors), len(data.evidence),
    )
    return ExtractionOutcome(data=data, state=state, attempts=attempts, errors=errors)
