"""Database-backed audit job queue.

The ``jobs`` table is the queue. Delivery is at-least-once:

  - ``enqueue_audit_job`` inserts a ``pending`` job.
  - ``claim_next_job`` takes a lease (``claimed_at``) on the oldest unclaimed
    ``pending`` job with a compare-and-set update, so two workers never claim
    the same row. Job status is left to the orchestrator.
  - A non-terminal job whose lease and ``updated_at`` are both older than
    ``stale_after`` seconds (worker died mid-run) is handed out again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..models.job import Job

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditJobMessage:
    case_id: str
    job_id: str


def enqueue_audit_job(db: Session, case_id) -> Job:
    job = Job(case_id=case_id, status="pending", progress=0, stage="Queued")
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info("[QUEUE] Enqueued job %s for case %s", job.id, case_id)
    return job


def claim_next_job(db: Session, *, stale_after: float) -> Optional[AuditJobMessage]:
    """Claim one deliverable job, or return None when the queue is empty."""
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=stale_after)

    unclaimed = and_(Job.status == "pending", Job.claimed_at.is_(None))
    stale = and_(
        Job.status.in_(("pending", "running")),
        Job.updated_at < cutoff,
        or_(Job.claimed_at.is_(None), Job.claimed_at < cutoff),
    )
    candidate = (
        db.query(Job)
        .filter(or_(unclaimed, stale))
        .order_by(Job.created_at.asc())
        .first()
    )
    if candidate is None:
        return None

    redelivery = candidate.claimed_at is not None or candidate.status == "running"
    if candidate.claimed_at is None:
        same_lease = Job.claimed_at.is_(None)
    else:
        same_lease = Job.claimed_at == candidate.claimed_at
    claimed = (
        db.query(Job)
        .filter(
            Job.id == candidate.id,
            same_lease,
            Job.updated_at == candidate.updated_at,
        )
        .update(
            {
                Job.claimed_at: now,
                Job.attempts: Job.attempts + 1,
                Job.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    db.commit()

    if claimed != 1:
        logger.info("[QUEUE] Job %s was claimed by another worker", candidate.id)
        return None

    if redelivery:
        logger.warning("[QUEUE] Re-delivering stale job %s", candidate.id)
    else:
        logger.info("[QUEUE] Claimed job %s", candidate.id)
    return AuditJobMessage(case_id=str(candidate.case_id), job_id=str(candidate.id))
