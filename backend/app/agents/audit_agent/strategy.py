"""Strategy rules — deterministic, no LLM, no randomness.

Rules are evaluated top to bottom and each one that applies writes its
labels over the current profile, so later rules override earlier ones.
Reordering ``STRATEGY_RULES`` changes outputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel

from ...schemas.benchmark_schema import MarketDelta, StrategyProfile
from .benchmark import benchmark_inputs, round_half_up

LOW_VOLUME_JOBS = 20
HIGH_TICKET = 500
MEMBERSHIP_PENETRATION_THRESHOLD = 0.5


@dataclass
class StrategyContext:
    """All inputs the rule table needs."""

    price_position: str
    price_gap_percent: Optional[float]
    membership_penetration_rate: float
    premium_signal_market_avg: float
    premium_signal_client: float
    avg_jobs: int
    avg_ticket: int

    @property
    def premium_deficit(self) -> bool:
        return self.premium_signal_client < self.premium_signal_market_avg


@dataclass(frozen=True)
class StrategyRule:
    name: str
    applies: Callable[[StrategyContext], bool]
    labels: Dict[str, str]


STRATEGY_RULES: List[StrategyRule] = [
    StrategyRule(
        name="below_market",
        applies=lambda ctx: ctx.price_position == "below_market",
        labels={
            "recommended_position": "Discount Drift",
            "revenue_strategy": "Ticket Expansion",
            "pricing_move": "Raise 5–15% with justification layer",
        },
    ),
    StrategyRule(
        name="at_market_premium_deficit",
        applies=lambda ctx: ctx.price_position == "at_market" and ctx.premium_deficit,
        labels={
            "recommended_position": "Under-Leveraged Mid-Tier",
            "revenue_strategy": "Perception Upgrade",
            "pricing_move": "Increase perceived value before price increase",
        },
    ),
    StrategyRule(
        name="above_market",
        applies=lambda ctx: ctx.price_position == "above_market",
        labels={
            "recommended_position": "Premium Attempt",
            "revenue_strategy": "Authority Reinforcement",
            "pricing_move": "Defend pricing with warranty + financing",
        },
    ),
    StrategyRule(
        name="membership_market",
        applies=lambda ctx: ctx.membership_penetration_rate > MEMBERSHIP_PENETRATION_THRESHOLD,
        labels={
            "structural_priority": "Membership Monetization",
            "competitive_edge_play": "Recurring Revenue Lock-In",
        },
    ),
    StrategyRule(
        name="premium_signal_gap",
        applies=lambda ctx: ctx.premium_deficit,
        labels={"competitive_edge_play": "Premium Signal Layer Required"},
    ),
    StrategyRule(
        name="low_volume_high_ticket",
        applies=lambda ctx: ctx.avg_jobs < LOW_VOLUME_JOBS and ctx.avg_ticket > HIGH_TICKET,
        labels={"revenue_strategy": "High Ticket Optimization"},
    ),
]


def build_context(
    delta: MarketDelta,
    vitals: Union[Mapping[str, Any], BaseModel, None],
) -> StrategyContext:
    inputs = benchmark_inputs(vitals)
    return StrategyContext(
        price_position=delta.price_position,
        price_gap_percent=delta.price_gap_percent,
        membership_penetration_rate=delta.membership_penetration_rate,
        premium_signal_market_avg=delta.premium_signal_market_avg,
        premium_signal_client=delta.premium_signal_client,
        avg_jobs=inputs.jobs_per_month,
        avg_ticket=round_half_up(inputs.avg_ticket),
    )


def compute_strategic_profile(
    delta: MarketDelta,
    vitals: Union[Mapping[str, Any], BaseModel, None],
    rules: List[StrategyRule] = STRATEGY_RULES,
) -> StrategyProfile:
    """Apply ``rules`` in order to the default profile (last write wins)."""
    ctx = build_context(delta, vitals)
    labels = StrategyProfile().model_dump()
    for rule in rules:
        if rule.applies(ctx):
            labels.update(rule.labels)
    return StrategyProfile(**labels)
