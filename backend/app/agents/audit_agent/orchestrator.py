"""Audit job orchestrator — drives one job from intake to persisted report.

Entry point: run_audit_job(message, session_factory=..., client=..., config=...)

Flow:
  1. Research     — grounded search passes (5% → 30%)
  2. Extraction   — structured evidence, repair retry, empty fallback (40% → 48%)
  3. Benchmark    — leak estimate, market delta, strategy labels (70%)
  4. Composition  — narrative report content, default fallback (85%)
  5. Persist the Report and mark the job completed (100%)

Stage and progress are committed after every transition so the status
poller sees monotonic progress. Any exception that escapes a stage fails
the job with the captured message. Nothing is re-raised. A job already
finalized by another delivery of the same message is never overwritten.
"""

from __future__ import annotations

import json
import logging
import secrets
import string
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import case as sql_case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import AuditConfig
from ...models.case import Case
from ...models.job import Job
from ...models.report import Report
from ...schemas.report_schema import FinalReport, ReportMeta
from ...services.job_queue import AuditJobMessage
from ...services.openai_client import GenerativeClient
from .benchmark import compute_benchmark
from .composer import run_composition
from .delta import compute_market_delta
from .errors import AuditPipelineError, CaseNotFoundError
from .extraction import run_extraction
from .research import run_research
from .strategy import compute_strategic_profile
from .timing import async_timer, with_timeout

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"completed", "failed"})

SHARE_ID_LENGTH = 10
_SHARE_ID_ALPHABET = string.ascii_letters + string.digits + "_-"
_REPORT_INSERT_ATTEMPTS = 3

# Progress checkpoints
PROGRESS_DISCOVERY = 5
PROGRESS_RESEARCH_START = 10
PROGRESS_RESEARCH_END = 30
PROGRESS_EXTRACTION = 40
PROGRESS_EXTRACTION_DONE = 48
PROGRESS_BENCHMARK = 70
PROGRESS_COMPOSITION = 85
PROGRESS_DONE = 100


def generate_share_id(length: int = SHARE_ID_LENGTH) -> str:
    return "".join(secrets.choice(_SHARE_ID_ALPHABET) for _ in range(length))


def _as_uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class JobTracker:
    """Sole writer of one job's status/stage/progress/diagnostics.

    Every write is a conditional UPDATE that skips terminal jobs, so a
    second delivery of the same job can never reopen or overwrite it.
    """

    def __init__(self, db: Session, job: Job) -> None:
        self.db = db
        self.job = job
        self.diagnostics: dict[str, Any] = {}

    def _write(self, values: dict) -> bool:
        applied = (
            self.db.query(Job)
            .filter(Job.id == self.job.id, Job.status.notin_(tuple(TERMINAL_STATUSES)))
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(self.job)
        return applied == 1

    def start(self) -> bool:
        return self._write({Job.status: "running", Job.error: None, Job.finished_at: None})

    async def update(self, stage: str, progress: int, **diagnostics: Any) -> None:
        progress = min(progress, PROGRESS_DONE)
        values: dict = {
            Job.stage: stage,
            # Never move progress backwards, even on re-delivery
            Job.progress: sql_case((Job.progress > progress, Job.progress), else_=progress),
        }
        if diagnostics:
            self.diagnostics.update(diagnostics)
            values[Job.diagnostics_json] = json.dumps(self.diagnostics, default=str)
        if not self._write(values):
            logger.info("[AUDIT] Job %s already %s — progress not recorded", self.job.id, self.job.status)
            return
        logger.info("[AUDIT] Job %s → %s (%d%%)", self.job.id, stage, self.job.progress)

    def complete(self) -> bool:
        return self._write(
            {
                Job.status: "completed",
                Job.stage: "Completed",
                Job.progress: PROGRESS_DONE,
                Job.error: None,
                Job.finished_at: datetime.utcnow(),
            }
        )

    def fail(self, message: str) -> bool:
        return self._write({Job.status: "failed", Job.error: message, Job.finished_at: datetime.utcnow()})


def _load_vitals(case: Case) -> dict[str, Any]:
    try:
        vitals = json.loads(case.vitals_json or "{}")
    except ValueError:
        logger.warning("[AUDIT] Case %s has unreadable vitals — treating as empty", case.id)
        return {}
    return vitals if isinstance(vitals, dict) else {}


def _create_report(db: Session, *, case_id: uuid.UUID, job_id: uuid.UUID, report: FinalReport) -> Report:
    """Insert the job's Report, or return the one another delivery already stored."""
    for _ in range(_REPORT_INSERT_ATTEMPTS):
        share_id = generate_share_id()
        while db.query(Report.id).filter(Report.share_id == share_id).first() is not None:
            share_id = generate_share_id()

        record = Report(
            case_id=case_id,
            job_id=job_id,
            share_id=share_id,
            content_json=report.model_dump_json(),
        )
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = db.query(Report).filter(Report.job_id == job_id).first()
            if existing is not None:
                logger.info("[AUDIT] Job %s already has report %s — keeping it", job_id, existing.share_id)
                return existing
            # Lost a share id race; draw again
            continue
        db.refresh(record)
        return record
    raise AuditPipelineError(f"Could not store report for job {job_id}")


async def _run_pipeline(
    db: Session,
    tracker: JobTracker,
    *,
    case_id: uuid.UUID,
    client: GenerativeClient,
    config: AuditConfig,
) -> Report:
    case = db.query(Case).filter(Case.id == case_id).first()
    if case is None:
        raise CaseNotFoundError(str(case_id))

    vitals = _load_vitals(case)
    timings: dict[str, float] = {}

    # ── Step 1: Research ────────────────────────────────────
    await tracker.update("Competitor Discovery", PROGRESS_DISCOVERY)

    async def _on_pass(done: int, total: int) -> None:
        span = PROGRESS_RESEARCH_END - PROGRESS_RESEARCH_START
        await tracker.update(
            f"Competitor Research ({done}/{total})",
            PROGRESS_RESEARCH_START + round(span * done / total),
        )

    t0 = time.perf_counter()
    async with async_timer("audit", "RESEARCH"):
        research = await with_timeout(
            run_research(
                client,
                what_they_sell=case.what_they_sell,
                location=case.location,
                config=config,
                on_pass=_on_pass,
            ),
            config.stage_timeout,
            "Research stage",
        )
    timings["research_ms"] = round((time.perf_counter() - t0) * 1000)
    await tracker.update("Competitor Research", PROGRESS_RESEARCH_END, research=research.diagnostics())

    # ── Step 2: Extraction ──────────────────────────────────
    await tracker.update("Evidence Extraction", PROGRESS_EXTRACTION)
    t0 = time.perf_counter()
    async with async_timer("audit", "EXTRACTION"):
        extraction = await with_timeout(
            run_extraction(client, research.transcript, config=config),
            config.stage_timeout,
            "Extraction stage",
        )
    timings["extraction_ms"] = round((time.perf_counter() - t0) * 1000)
    extracted = extraction.data
    await tracker.update("Evidence Extraction", PROGRESS_EXTRACTION_DONE, extraction=extraction.diagnostics())

    # ── Step 3: Benchmark + delta + strategy ────────────────
    await tracker.update("Benchmarking", PROGRESS_BENCHMARK)
    benchmark = compute_benchmark(vitals, extracted)
    delta = compute_market_delta(vitals, extracted)
    strategy = compute_strategic_profile(delta, vitals)
    logger.info(
        "[AUDIT] Benchmark: confidence=%s, leak/yr=%.0f–%.0f, position=%s",
        benchmark.confidence,
        benchmark.leak.per_year.low,
        benchmark.leak.per_year.high,
        strategy.recommended_position,
    )

    # ── Step 4: Composition ─────────────────────────────────
    await tracker.update("Report Composition", PROGRESS_COMPOSITION)
    t0 = time.perf_counter()
    async with async_timer("audit", "COMPOSITION"):
        composition = await with_timeout(
            run_composition(
                client,
                case_context={
                    "website_url": case.website_url,
                    "location": case.location,
                    "what_they_sell": case.what_they_sell,
                    "vitals": vitals,
                },
                extracted=extracted,
                benchmark=benchmark,
                delta=delta,
                strategy=strategy,
                config=config,
            ),
            config.stage_timeout,
            "Composition stage",
        )
    timings["composition_ms"] = round((time.perf_counter() - t0) * 1000)
    await tracker.update(
        "Report Composition",
        PROGRESS_COMPOSITION,
        composition={"fallback_used": composition.fallback_used, "error": composition.error},
        timings=timings,
    )

    # ── Step 5: Persist ─────────────────────────────────────
    final = FinalReport(
        **composition.content.model_dump(),
        meta=ReportMeta(
            generated_at=datetime.now(timezone.utc).isoformat(),
            confidence=benchmark.confidence,
            research_mode=research.mode,
            source_count=len(research.sources),
            composition_fallback=composition.fallback_used,
            extraction_state=extraction.state.value,
            models={
                "research": config.research_model,
                "extraction": config.model,
                "composition": config.composer_model,
            },
        ),
        benchmark_data=benchmark,
        delta=delta,
        strategic_profile=strategy,
        evidence_drawer=extracted.evidence,
        competitors=extracted.competitors,
        sources=research.sources,
    )
    return _create_report(db, case_id=case.id, job_id=tracker.job.id, report=final)


async def run_audit_job(
    message: AuditJobMessage,
    *,
    session_factory: Callable[[], Session],
    client: GenerativeClient,
    config: AuditConfig,
) -> Optional[str]:
    """Run one audit job to a terminal state. Returns the final status.

    Safe to call again for the same job: a terminal job is left alone, and
    a job whose report already exists is just marked completed.
    """
    db = session_factory()
    try:
        job_id = _as_uuid(message.job_id)
        case_id = _as_uuid(message.case_id)

        job = db.query(Job).filter(Job.id == job_id).first()
        if job is None:
            logger.error("[AUDIT] Job %s not found — dropping message", message.job_id)
            return None
        if job.status in TERMINAL_STATUSES:
            logger.info("[AUDIT] Job %s already %s — skipping", job.id, job.status)
            return job.status

        tracker = JobTracker(db, job)

        existing = db.query(Report).filter(Report.job_id == job.id).first()
        if existing is not None:
            logger.info("[AUDIT] Report %s already exists for job %s — finalizing", existing.share_id, job.id)
            tracker.complete()
            return job.status

        logger.info("[AUDIT] Pipeline START: job=%s case=%s", job_id, case_id)
        if not tracker.start():
            logger.info("[AUDIT] Job %s finished elsewhere — skipping", job.id)
            return job.status
        try:
            report = await _run_pipeline(db, tracker, case_id=case_id, client=client, config=config)
        except Exception as exc:
            logger.exception("[AUDIT] Job %s FAILED: %s", job_id, exc)
            db.rollback()
            tracker.fail(str(exc) or exc.__class__.__name__)
            return job.status

        tracker.complete()
        logger.info("[AUDIT] Job %s COMPLETE — report %s", job_id, report.share_id)
        return job.status
    except Exception:
        # Bookkeeping itself failed (e.g. database unavailable)
        logger.exception("[AUDIT] Could not record outcome for job %s", message.job_id)
        return None
    finally:
        db.close()
