from .job_queue import AuditJobMessage, claim_next_job, enqueue_audit_job
from .openai_client import GenerationError, GenerationResult, GenerativeClient, OpenAIClient

__all__ = [
    "AuditJobMessage",
    "claim_next_job",
    "enqueue_audit_job",
    "GenerationError",
    "GenerationResult",
    "GenerativeClient",
    "OpenAIClient",
]
