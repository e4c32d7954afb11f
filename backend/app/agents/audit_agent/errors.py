"""Failure types raised inside the audit pipeline.

Per-call failures (timeouts, bad JSON, schema mismatches) are recovered
inside the stage that owns the call. What reaches the orchestrator is a
missing case, a whole-stage timeout or an unexpected exception, and each
of those fails the job.
"""

from __future__ import annotations


class AuditPipelineError(Exception):
    """Base class for pipeline failures."""


class CaseNotFoundError(AuditPipelineError):
    def __init__(self, case_id: str) -> None:
        super().__init__(f"Case not found: {case_id}")
        self.case_id = case_id


class StageTimeoutError(AuditPipelineError):
    def __init__(self, label: str, seconds: float) -> None:
        super().__init__(f"{label} timed out after {seconds:.0f}s")
        self.label = label
        self.seconds = seconds
