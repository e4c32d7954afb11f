from .case import Case
from .job import Job
from .report import Report

__all__ = ["Case", "Job", "Report"]
