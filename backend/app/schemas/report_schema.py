"""Pydantic schemas for the composed report and the persisted report blob."""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field

from .benchmark_schema import MarketDelta, ScoreResult, StrategyProfile
from .extraction_schema import Competitor, Evidence


class TopLeak(BaseModel):
    title: str = ""
    why_it_matters: str = ""
    market_contrast: str = ""


class ScorecardRow(BaseModel):
    label: str = ""
    score: str = ""
    notes: str = ""


class OfferRebuildItem(BaseModel):
    title: str = ""
    content: str = ""


class ScriptItem(BaseModel):
    title: str = ""
    script_body: str = ""


class ReportContent(BaseModel):
    """Narrative section written by the composer model.

    ``ReportContent()`` is the fallback used when composition fails.
    """

    quick_verdict: str = ""
    market_position: str = ""
    top_leaks_ranked: List[TopLeak] = Field(default_factory=list)
    scorecard_rows: List[ScorecardRow] = Field(default_factory=list)
    offer_rebuild: List[OfferRebuildItem] = Field(default_factory=list)
    scripts: List[ScriptItem] = Field(default_factory=list)
    next_7_days: List[str] = Field(default_factory=list)
    assumptions_ledger: List[str] = Field(default_factory=list)


class ReportMeta(BaseModel):
    generated_at: str
    confidence: Literal["HIGH", "MED", "LOW"]
    research_mode: Literal["grounded", "degraded"]
    source_count: int = 0
    composition_fallback: bool = False
    extraction_state: str = ""
    models: dict[str, str] = Field(default_factory=dict)


class FinalReport(ReportContent):
    """Persisted report blob: narrative plus the deterministic sections."""

    meta: ReportMeta
    benchmark_data: ScoreResult
    delta: MarketDelta
    strategic_profile: StrategyProfile
    evidence_drawer: List[Evidence] = Field(default_factory=list)
    competitors: List[Competitor] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
