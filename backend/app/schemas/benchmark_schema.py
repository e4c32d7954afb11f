"""Pydantic schemas for the deterministic engines (benchmark, delta, strategy)."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class Range(BaseModel):
    low: float = 0.0
    high: float = 0.0


class BenchmarkInputs(BaseModel):
    jobs_per_month: int = Field(0, ge=0)
    avg_ticket: float = Field(0.0, ge=0)


class LeakEstimate(BaseModel):
    """Leak range as a percentage of ticket and in money per job/month/year."""

    pct: Range
    per_job: Range
    per_month: Range
    per_year: Range


class ScoreResult(BaseModel):
    """Benchmark output — embedded in the report, never stored alone."""

    confidence: Literal["HIGH", "MED", "LOW"]
    price_corridor: Literal["mid", "unknown"]
    membership_common: bool
    fees_common: bool
    warranty_common: bool
    inputs: BenchmarkInputs
    leak: LeakEstimate
    assumptions: List[str] = Field(default_factory=list)


PricePosition = Literal["below_market", "at_market", "above_market", "unknown"]


class MarketDelta(BaseModel):
    """Client vs. market summary derived from extracted competitor evidence."""

    market_median_ticket: Optional[float] = None
    price_position: PricePosition = "unknown"
    price_gap_percent: Optional[float] = None
    membership_penetration_rate: float = 0.0
    warranty_standard: str = "Not enough public data"
    premium_signal_market_avg: float = 0.0
    premium_signal_client: int = 0
    revenue_leak_estimate_range: Range = Field(default_factory=Range)


class StrategyProfile(BaseModel):
    recommended_position: str = "Undefined"
    revenue_strategy: str = "Stabilize"
    structural_priority: str = "Clarify Offer"
    pricing_move: str = "Maintain"
    competitive_edge_play: str = "Differentiate Messaging"
