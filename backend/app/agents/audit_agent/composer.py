"""Composition stage — narrative report content from all upstream results.

One JSON-mode call, no retry. Bad JSON, a schema mismatch, a timeout or a
failed call all yield ``ReportContent()`` so the job still completes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError

from ...config import AuditConfig
from ...schemas.benchmark_schema import MarketDelta, ScoreResult, StrategyProfile
from ...schemas.extraction_schema import ExtractedData
from ...schemas.report_schema import ReportContent
from ...services.openai_client import GenerativeClient, safe_json_parse
from .prompts import build_composer_prompt
from .timing import with_timeout

logger = logging.getLogger(__name__)


@dataclass
class CompositionOutcome:
    content: ReportContent
    fallback_used: bool
    error: Optional[str] = None


async def run_composition(
    client: GenerativeClient,
    *,
    case_context: dict[str, Any],
    extracted: ExtractedData,
    benchmark: ScoreResult,
    delta: MarketDelta,
    strategy: StrategyProfile,
    config: AuditConfig,
) -> CompositionOutcome:
    context = {
        "client": case_context,
        "market_data": extracted.model_dump(),
        "benchmark": benchmark.model_dump(),
        "delta": delta.model_dump(),
        "strategic_profile": strategy.model_dump(),
    }
    prompt = build_composer_prompt(context)

    try:
        result = await with_timeout(
            client.generate_json(
                prompt,
                model=config.composer_model,
                max_output_tokens=config.composition_max_tokens,
            ),
            config.composition_timeout,
            "Composer",
        )
    except Exception as exc:
        logger.warning("[COMPOSE] Call failed (%s) — using default report content", exc)
        return CompositionOutcome(content=ReportContent(), fallback_used=True, error=f"call failed: {exc}")

    parsed = safe_json_parse(result.text)
    if parsed is None:
        logger.warning("[COMPOSE] Response was not JSON — using default report content")
        return CompositionOutcome(
            content=ReportContent(), fallback_used=True, error="response was not a JSON object"
        )

    try:
        content = ReportContent.model_validate(parsed)
    except ValidationError as exc:
        logger.warning("[COMPOSE] Response failed validation — using default report content")
        return CompositionOutcome(
            content=ReportContent(), fallback_used=True, error=f"schema validation failed: {exc.error_count()} error(s)"
        )

    logger.info(
        "[COMPOSE] Report content ready: %d leaks, %d actions",
        len(content.top_leaks_ranked), len(content.next_7_days),
    )
    return CompositionOutcome(content=content, fallback_used=False)
