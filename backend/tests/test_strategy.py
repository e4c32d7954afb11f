"""Strategy engine tests — ordered rule table, last write wins."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.agents.audit_agent.strategy import STRATEGY_RULES, build_context, compute_strategic_profile
from app.schemas.benchmark_schema import MarketDelta, StrategyProfile

MID_VOLUME = {"jobs_min": 30, "jobs_max": 30, "ticket_min": 300, "ticket_max": 300}
LOW_VOLUME_HIGH_TICKET = {"jobs_min": 10, "jobs_max": 10, "ticket_min": 800, "ticket_max": 800}


def test_defaults_when_nothing_applies():
    assert compute_strategic_profile(MarketDelta(), MID_VOLUME) == StrategyProfile()


def test_below_market():
    profile = compute_strategic_profile(MarketDelta(price_position="below_market"), MID_VOLUME)
    assert profile.recommended_position == "Discount Drift"
    assert profile.revenue_strategy == "Ticket Expansion"
    assert profile.pricing_move.startswith("Raise 5–15%")
    assert profile.structural_priority == "Clarify Offer"


def test_at_market_with_premium_deficit():
    delta = MarketDelta(price_position="at_market", premium_signal_market_avg=2.5, premium_signal_client=1)
    profile = compute_strategic_profile(delta, MID_VOLUME)
    assert profile.recommended_position == "Under-Leveraged Mid-Tier"
    assert profile.revenue_strategy == "Perception Upgrade"
    assert profile.competitive_edge_play == "Premium Signal Layer Required"


def test_at_market_without_deficit_keeps_defaults():
    delta = MarketDelta(price_position="at_market", premium_signal_market_avg=1.0, premium_signal_client=3)
    assert compute_strategic_profile(delta, MID_VOLUME).recommended_position == "Undefined"


def test_above_market():
    profile = compute_strategic_profile(MarketDelta(price_position="above_market"), MID_VOLUME)
    assert profile.recommended_position == "Premium Attempt"
    assert profile.revenue_strategy == "Authority Reinforcement"
    assert profile.pricing_move == "Defend pricing with warranty + financing"


def test_membership_market():
    profile = compute_strategic_profile(MarketDelta(membership_penetration_rate=0.6), MID_VOLUME)
    assert profile.structural_priority == "Membership Monetization"
    assert profile.competitive_edge_play == "Recurring Revenue Lock-In"


def test_membership_threshold_is_strict():
    profile = compute_strategic_profile(MarketDelta(membership_penetration_rate=0.5), MID_VOLUME)
    assert profile.structural_priority == "Clarify Offer"


def test_premium_gap_overrides_membership_edge_play():
    delta = MarketDelta(membership_penetration_rate=0.8, premium_signal_market_avg=3.0, premium_signal_client=1)
    profile = compute_strategic_profile(delta, MID_VOLUME)
    assert profile.structural_priority == "Membership Monetization"
    assert profile.competitive_edge_play == "Premium Signal Layer Required"


def test_low_volume_high_ticket_overrides_revenue_strategy():
    profile = compute_strategic_profile(MarketDelta(price_position="below_market"), LOW_VOLUME_HIGH_TICKET)
    assert profile.recommended_position == "Discount Drift"
    assert profile.revenue_strategy == "High Ticket Optimization"


def test_rule_order_decides_conflicts():
    delta = MarketDelta(price_position="below_market")
    reversed_rules = list(reversed(STRATEGY_RULES))
    profile = compute_strategic_profile(delta, LOW_VOLUME_HIGH_TICKET, rules=reversed_rules)
    assert profile.revenue_strategy == "Ticket Expansion"


def test_context_uses_rounded_inputs():
    ctx = build_context(MarketDelta(), {"jobs_min": 10, "jobs_max": 11, "ticket_min": 500, "ticket_max": 501})
    assert ctx.avg_jobs == 11
    assert ctx.avg_ticket == 501
    assert ctx.premium_deficit is False
