"""Market delta — where the client's price and offer sit against competitors.

Pure function. Competitor prices are pulled out of free-text pricing
signals and pricing evidence snippets ("$129", "from $99", "$129–$199"),
trimmed of outliers and reduced to a median ticket.
"""

from __future__ import annotations

import re
import statistics
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel

from ...schemas.benchmark_schema import MarketDelta, Range
from ...schemas.extraction_schema import ExtractedData
from .benchmark import benchmark_inputs, round_half_up

_DOLLAR_RE = re.compile(r"\$?\b(\d{2,5})\b")
_PRICE_FLOOR = 20
_PRICE_CEILING = 20_000

TRIM_PCT = 0.15
TRIM_MIN_SAMPLES = 6

# Gap (in %) beyond which the client is below / above market
POSITION_BAND_PCT = 8.0

# Leak windows when below market
LOW_WINDOW_MONTHS = 6
HIGH_WINDOW_MONTHS = 12


def extract_dollars(text: Optional[str]) -> list[int]:
    cleaned = (text or "").replace(",", "")
    amounts = [int(m) for m in _DOLLAR_RE.findall(cleaned)]
    return [a for a in amounts if _PRICE_FLOOR <= a <= _PRICE_CEILING]


def trim_outliers(values: list[float], trim_pct: float = TRIM_PCT) -> list[float]:
    if len(values) < TRIM_MIN_SAMPLES:
        return list(values)
    ordered = sorted(values)
    cut = int(len(ordered) * trim_pct)
    return ordered[cut: len(ordered) - cut]


def client_premium_signals(vitals: Mapping[str, Any]) -> int:
    """Count premium offer elements present on the intake."""
    signals = 0
    if vitals.get("has_membership"):
        signals += 1
    if isinstance(vitals.get("warranty"), str) and vitals["warranty"].strip():
        signals += 1
    if vitals.get("has_priority"):
        signals += 1
    if vitals.get("services"):
        signals += 1
    return signals


def compute_market_delta(
    vitals: Union[Mapping[str, Any], BaseModel, None],
    extracted: ExtractedData,
) -> MarketDelta:
    if isinstance(vitals, BaseModel):
        vitals = vitals.model_dump()
    vitals = vitals or {}

    inputs = benchmark_inputs(vitals)
    monthly_jobs = inputs.jobs_per_month
    # Whole-dollar client ticket, as the intake ranges are quoted
    client_ticket = round_half_up(inputs.avg_ticket)

    # ── Market median ticket ─────────────────────────────────
    candidates: list[float] = []
    for competitor in extracted.competitors:
        for signal in competitor.pricing_signals:
            candidates.extend(extract_dollars(signal))
    for evidence in extracted.evidence:
        if evidence.type == "pricing":
            candidates.extend(extract_dollars(evidence.snippet))

    trimmed = trim_outliers(candidates)
    market_median = float(statistics.median(trimmed)) if trimmed else None

    # ── Offer penetration ────────────────────────────────────
    competitors = extracted.competitors
    with_membership = sum(
        1 for c in competitors if isinstance(c.membership_offer, str) and c.membership_offer.strip()
    )
    membership_rate = with_membership / len(competitors) if competitors else 0.0

    warranty_offers = [c.warranty_offer.strip() for c in competitors if c.warranty_offer and c.warranty_offer.strip()]
    # Longest text wins; ties keep competitor order
    warranty_standard = max(warranty_offers, key=len) if warranty_offers else "Not enough public data"

    premium_counts = [len(c.premium_signals) for c in competitors]
    premium_avg = sum(premium_counts) / len(premium_counts) if premium_counts else 0.0

    # ── Price position ───────────────────────────────────────
    price_position = "unknown"
    price_gap_percent: Optional[float] = None
    if market_median and client_ticket:
        gap = (client_ticket - market_median) / market_median * 100.0
        price_gap_percent = round(gap, 1)
        if gap <= -POSITION_BAND_PCT:
            price_position = "below_market"
        elif gap >= POSITION_BAND_PCT:
            price_position = "above_market"
        else:
            price_position = "at_market"

    # ── Revenue leak when under-priced ───────────────────────
    leak = Range()
    if market_median and client_ticket and monthly_jobs > 0 and price_position == "below_market":
        per_job_gap = market_median - client_ticket
        monthly_low = max(0, round(per_job_gap * 0.5 * monthly_jobs))
        monthly_high = max(0, round(per_job_gap * monthly_jobs))
        leak = Range(low=monthly_low * LOW_WINDOW_MONTHS, high=monthly_high * HIGH_WINDOW_MONTHS)

    return MarketDelta(
        market_median_ticket=market_median,
        price_position=price_position,
        price_gap_percent=price_gap_percent,
        membership_penetration_rate=round(membership_rate, 2),
        warranty_standard=warranty_standard,
        premium_signal_market_avg=round(premium_avg, 1),
        premium_signal_client=client_premium_signals(vitals),
        revenue_leak_estimate_range=leak,
    )
