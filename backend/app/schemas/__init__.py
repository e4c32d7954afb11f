# Schemas package
from .intake_schema import CaseCreate, CaseResponse, JobStatusResponse, RunResponse, Vitals
from .extraction_schema import Competitor, Evidence, ExtractedData
from .benchmark_schema import MarketDelta, ScoreResult, StrategyProfile
from .report_schema import FinalReport, ReportContent

__all__ = [
    "CaseCreate",
    "CaseResponse",
    "RunResponse",
    "JobStatusResponse",
    "Vitals",
    "Competitor",
    "Evidence",
    "ExtractedData",
    "ScoreResult",
    "MarketDelta",
    "StrategyProfile",
    "ReportContent",
    "FinalReport",
]
