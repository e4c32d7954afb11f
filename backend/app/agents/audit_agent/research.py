"""Research stage — grounded search passes that collect raw competitor evidence.

Runs one grounded generation per focus area in ``RESEARCH_FOCUSES``.
Each pass is bounded by its own timeout. A failed or timed-out pass is
recorded and skipped; the stage itself never raises for a bad pass.

Sources come from two places: grounding metadata (URL citations) and a
regex scan of the returned text. If no pass produced grounding metadata
the stage reports ``mode="degraded"`` and the pipeline carries on.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ...config import AuditConfig
from ...services.openai_client import GenerationResult, GenerativeClient
from .prompts import RESEARCH_FOCUSES, build_research_prompt
from .timing import with_timeout

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"https?://[^\s<>\"'`|\)\]\}]+", re.IGNORECASE)
_TRAILING_PUNCT = ".,;:!?*"

PassCallback = Callable[[int, int], Awaitable[None]]


@dataclass
class ResearchResult:
    """Accumulated output of all research passes."""

    transcript: str
    sources: list[str] = field(default_factory=list)
    grounded_sources: list[str] = field(default_factory=list)
    mode: str = "degraded"  # grounded | degraded
    errors: list[str] = field(default_factory=list)
    passes_total: int = 0
    passes_succeeded: int = 0

    def diagnostics(self) -> dict:
        return {
            "mode": self.mode,
            "passes_total": self.passes_total,
            "passes_succeeded": self.passes_succeeded,
            "source_count": len(self.sources),
            "grounded_source_count": len(self.grounded_sources),
            "errors": self.errors,
        }


def extract_urls(text: str) -> list[str]:
    """Return URL-like tokens found in free text, trailing punctuation stripped."""
    urls: list[str] = []
    for match in _URL_RE.findall(text or ""):
        url = match.rstrip(_TRAILING_PUNCT)
        if url and url not in urls:
            urls.append(url)
    return urls


async def _run_pass(
    client: GenerativeClient,
    prompt: str,
    *,
    label: str,
    timeout: float,
) -> GenerationResult:
    return await with_timeout(client.generate_grounded(prompt), timeout, label)


async def run_research(
    client: GenerativeClient,
    *,
    what_they_sell: str,
    location: str,
    config: AuditConfig,
    on_pass: Optional[PassCallback] = None,
) -> ResearchResult:
    """Run every research pass and merge the results.

    Passes run concurrently. ``on_pass(done, total)`` is awaited after each
    pass finishes (success or failure) so the caller can report progress.
    """
    logger.info("[RESEARCH] Querying competitors: %s in %s", what_they_sell, location)

    total = len(RESEARCH_FOCUSES)
    tasks: dict[asyncio.Task, int] = {}
    for index, (focus_key, focus) in enumerate(RESEARCH_FOCUSES):
        prompt = build_research_prompt(
            what_they_sell=what_they_sell,
            location=location,
            focus_key=focus_key,
            focus=focus,
        )
        task = asyncio.ensure_future(
            _run_pass(client, prompt, label=f"Research[{focus_key}]", timeout=config.research_timeout)
        )
        tasks[task] = index

    outcomes: list[Optional[GenerationResult]] = [None] * total
    errors: dict[int, str] = {}

    done = 0
    pending = set(tasks)
    try:
        while pending:
            finished, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in finished:
                index = tasks[task]
                focus_key = RESEARCH_FOCUSES[index][0]
                exc = task.exception()
                if exc is not None:
                    errors[index] = f"{focus_key}: {exc}"
                    logger.warning("[RESEARCH] Pass %r failed: %s", focus_key, exc)
                else:
                    outcomes[index] = task.result()
                done += 1
                if on_pass is not None:
                    await on_pass(done, total)
    finally:
        for task in pending:
            task.cancel()
        # Settle every pass so no exception is left unretrieved
        await asyncio.gather(*tasks, return_exceptions=True)

    transcript_parts: list[str] = []
    sources: list[str] = []
    grounded: list[str] = []
    for index, outcome in enumerate(outcomes):
        if outcome is None:
            continue
        focus_key = RESEARCH_FOCUSES[index][0]
        text = (outcome.text or "").strip()
        if text:
            transcript_parts.append(f"### {focus_key.upper()}\n{text}")
        for url in outcome.source_urls:
            if url not in grounded:
                grounded.append(url)
            if url not in sources:
                sources.append(url)
        for url in extract_urls(text):
            if url not in sources:
                sources.append(url)

    succeeded = sum(1 for o in outcomes if o is not None)
    mode = "grounded" if grounded else "degraded"

    logger.info(
        "[RESEARCH] %d/%d passes ok, %d sources (%d grounded), mode=%s",
        succeeded, total, len(sources), len(grounded), mode,
    )
    if mode == "degraded":
        logger.warning("[RESEARCH] No grounded sources — continuing in degraded mode")

    return ResearchResult(
        transcript="\n\n".join(transcript_parts),
        sources=sources,
        grounded_sources=grounded,
        mode=mode,
        errors=[errors[i] for i in sorted(errors)],
        passes_total=total,
        passes_succeeded=succeeded,
    )
