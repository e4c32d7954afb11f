"""Audit routes — intake, job launch, status polling and report retrieval.

Endpoints:
  POST /cases                 — Submit the intake questionnaire
  POST /cases/{case_id}/run   — Queue an audit job for a case
  GET  /jobs/{job_id}         — Poll job status / progress
  GET  /reports/{share_id}    — Fetch a completed report by share id
"""

from __future__ import annotations

import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.case import Case
from ..models.job import Job
from ..models.report import Report
from ..schemas.intake_schema import CaseCreate, CaseResponse, JobStatusResponse, RunResponse
from ..services.job_queue import enqueue_audit_job

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Audit"])


@router.post(
    "/cases",
    response_model=CaseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit intake",
)
def create_case(payload: CaseCreate, db: Session = Depends(get_db)) -> CaseResponse:
    vitals = payload.to_vitals().model_dump()
    case = Case(
        website_url=payload.website_url,
        location=payload.location_label(),
        what_they_sell=payload.what_they_sell,
        vitals_json=json.dumps(vitals),
        pro_inputs_json=json.dumps({"normalized": payload.model_dump()}),
    )
    db.add(case)
    db.commit()
    db.refresh(case)
    logger.info("[INTAKE] Created case %s (%s)", case.id, case.what_they_sell)
    return CaseResponse(
        case_id=case.id,
        location=case.location,
        what_they_sell=case.what_they_sell,
        vitals=vitals,
    )


@router.post(
    "/cases/{case_id}/run",
    response_model=RunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue an audit job",
)
def run_case(case_id: UUID, db: Session = Depends(get_db)) -> RunResponse:
    case = db.query(Case).filter(Case.id == case_id).first()
    if case is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    job = enqueue_audit_job(db, case.id)
    return RunResponse(job_id=job.id)


@router.get(
    "/jobs/{job_id}",
    response_model=JobStatusResponse,
    summary="Poll job status",
)
def get_job(job_id: UUID, db: Session = Depends(get_db)) -> JobStatusResponse:
    job = db.query(Job).filter(Job.id == job_id).first()
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    share_id = None
    if job.status == "completed":
        report = db.query(Report).filter(Report.job_id == job.id).first()
        share_id = report.share_id if report else None

    return JobStatusResponse(
        status=job.status,
        stage=job.stage,
        progress=job.progress or 0,
        error=job.error if job.status == "failed" else None,
        report_share_id=share_id,
    )


@router.get(
    "/reports/{share_id}",
    summary="Fetch a report by share id",
)
def get_report(share_id: str, db: Session = Depends(get_db)) -> dict:
    report = db.query(Report).filter(Report.share_id == share_id).first()
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return json.loads(report.content_json)
