"""Job queue tests — enqueue, claim, compare-and-set, stale re-delivery."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import json
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base
from app.models import Case, Job
from app.services.job_queue import claim_next_job, enqueue_audit_job

# ---------------------------------------------------------------------------
# Test database setup
# ---------------------------------------------------------------------------
TEST_DATABASE_URL = "sqlite:///./test_job_queue.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def _case(db):
    case = Case(
        website_url="https://client.example.com",
        location="Austin, TX",
        what_they_sell="Plumbing repair",
        vitals_json=json.dumps({"jobs_min": 10, "jobs_max": 50}),
    )
    db.add(case)
    db.commit()
    return case


def test_enqueue_creates_pending_job(db):
    case = _case(db)
    job = enqueue_audit_job(db, case.id)

    assert job.status == "pending"
    assert job.stage == "Queued"
    assert job.progress == 0
    assert job.attempts == 0
    assert job.case_id == case.id


def test_claim_takes_lease_and_counts_attempt(db):
    case = _case(db)
    job = enqueue_audit_job(db, case.id)

    message = claim_next_job(db, stale_after=600)
    assert message is not None
    assert message.job_id == str(job.id)
    assert message.case_id == str(case.id)

    db.refresh(job)
    # Status stays with the orchestrator
    assert job.status == "pending"
    assert job.claimed_at is not None
    assert job.attempts == 1


def test_empty_queue_returns_none(db):
    assert claim_next_job(db, stale_after=600) is None


def test_claimed_job_is_not_handed_out_twice(db):
    case = _case(db)
    enqueue_audit_job(db, case.id)

    assert claim_next_job(db, stale_after=600) is not None
    assert claim_next_job(db, stale_after=600) is None


def test_oldest_job_first(db):
    case = _case(db)
    newer = Job(case_id=case.id, status="pending", created_at=datetime.utcnow())
    older = Job(case_id=case.id, status="pending", created_at=datetime.utcnow() - timedelta(minutes=5))
    db.add_all([newer, older])
    db.commit()

    assert claim_next_job(db, stale_after=600).job_id == str(older.id)
    assert claim_next_job(db, stale_after=600).job_id == str(newer.id)


def test_stale_running_job_is_redelivered(db):
    case = _case(db)
    job = Job(
        case_id=case.id,
        status="running",
        progress=40,
        attempts=1,
        updated_at=datetime.utcnow() - timedelta(hours=1),
    )
    db.add(job)
    db.commit()

    message = claim_next_job(db, stale_after=600)
    assert message is not None
    assert message.job_id == str(job.id)

    db.refresh(job)
    assert job.attempts == 2
    assert job.progress == 40


def test_fresh_running_and_terminal_jobs_are_not_claimed(db):
    case = _case(db)
    db.add_all(
        [
            Job(case_id=case.id, status="running", updated_at=datetime.utcnow()),
            Job(case_id=case.id, status="completed", progress=100),
            Job(case_id=case.id, status="failed", error="boom"),
        ]
    )
    db.commit()

    assert claim_next_job(db, stale_after=600) is None



def test_expired_lease_on_pending_job_is_redelivered(db):
    case = _case(db)
    an_hour_ago = datetime.utcnow() - timedelta(hours=1)
    job = Job(case_id=case.id, status="pending", attempts=1, claimed_at=an_hour_ago, updated_at=an_hour_ago)
    db.add(job)
    db.commit()

    message = claim_next_job(db, stale_after=600)
    assert message is not None
    assert message.job_id == str(job.id)

    db.refresh(job)
    assert job.attempts == 2
    assert job.claimed_at > an_hour_ago


def test_old_lease_with_recent_progress_is_not_claimed(db):
    case = _case(db)
    db.add(
        Job(
            case_id=case.id,
            status="running",
            claimed_at=datetime.utcnow() - timedelta(hours=1),
            updated_at=datetime.utcnow(),
        )
    )
    db.commit()

    assert claim_next_job(db, stale_after=600) is None
