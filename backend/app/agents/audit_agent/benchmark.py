"""Deterministic benchmark engine — vitals + extracted evidence → ScoreResult.

Pure function, no I/O, no randomness, no clock. The same inputs always
produce the same ScoreResult.

Leak model:
  pct_low  = 10 % of average ticket
  pct_high = 25 % (+5 membership common, +3 fees common, +2 warranty common),
             capped at 35 %
  per_job   = avg_ticket × pct
  per_month = per_job × jobs_per_month
  per_year  = per_month × 12
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Union

from pydantic import BaseModel

from ...schemas.benchmark_schema import BenchmarkInputs, LeakEstimate, Range, ScoreResult
from ...schemas.extraction_schema import Competitor, ExtractedData

# ── Confidence thresholds ────────────────────────────────────────────────
HIGH_MIN_COMPETITORS = 5
HIGH_MIN_PRICED_COMPETITORS = 3
MED_MIN_COMPETITORS = 3

# ── "Common practice" thresholds (share of competitors, strictly greater) ─
MEMBERSHIP_COMMON_THRESHOLD = 0.3
FEES_COMMON_THRESHOLD = 0.4
WARRANTY_COMMON_THRESHOLD = 0.5

# ── Leak band, in whole percentage points ────────────────────────────────
LEAK_PCT_LOW = 10
LEAK_PCT_HIGH_BASE = 25
LEAK_PCT_HIGH_CAP = 35
MEMBERSHIP_BUMP = 5
FEES_BUMP = 3
WARRANTY_BUMP = 2

MONTHS_PER_YEAR = 12


def to_number(value: Any) -> float:
    """Coerce an intake value to a finite float; anything else becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _as_mapping(vitals: Union[Mapping[str, Any], BaseModel, None]) -> Mapping[str, Any]:
    if vitals is None:
        return {}
    if isinstance(vitals, BaseModel):
        return vitals.model_dump()
    return vitals


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _share(competitors: list[Competitor], predicate) -> float:
    if not competitors:
        return 0.0
    return sum(1 for c in competitors if predicate(c)) / len(competitors)


def benchmark_inputs(vitals: Union[Mapping[str, Any], BaseModel, None]) -> BenchmarkInputs:
    """Average jobs/month (rounded) and average ticket, clamped to ≥ 0."""
    v = _as_mapping(vitals)
    jobs_avg = (to_number(v.get("jobs_min")) + to_number(v.get("jobs_max"))) / 2.0
    ticket_avg = (to_number(v.get("ticket_min")) + to_number(v.get("ticket_max"))) / 2.0
    return BenchmarkInputs(
        jobs_per_month=max(0, round_half_up(jobs_avg)),
        avg_ticket=max(0.0, ticket_avg),
    )


def compute_confidence(competitors: list[Competitor]) -> str:
    priced = sum(1 for c in competitors if c.pricing_signals)
    if len(competitors) >= HIGH_MIN_COMPETITORS and priced >= HIGH_MIN_PRICED_COMPETITORS:
        return "HIGH"
    if len(competitors) >= MED_MIN_COMPETITORS:
        return "MED"
    return "LOW"


def compute_benchmark(
    vitals: Union[Mapping[str, Any], BaseModel, None],
    extracted: ExtractedData,
) -> ScoreResult:
    competitors = list(extracted.competitors)
    count = len(competitors)

    confidence = compute_confidence(competitors)

    # ── Pattern flags ────────────────────────────────────────
    membership_share = _share(competitors, lambda c: _has_text(c.membership_offer))
    fees_share = _share(competitors, lambda c: _has_text(c.trip_fee))
    warranty_share = _share(competitors, lambda c: _has_text(c.warranty_offer))

    membership_common = count > 0 and membership_share > MEMBERSHIP_COMMON_THRESHOLD
    fees_common = count > 0 and fees_share > FEES_COMMON_THRESHOLD
    warranty_common = count > 0 and warranty_share > WARRANTY_COMMON_THRESHOLD

    has_pricing = any(c.pricing_signals for c in competitors) or any(
        e.type == "pricing" for e in extracted.evidence
    )
    price_corridor = "mid" if has_pricing else "unknown"

    # ── Numeric inputs ───────────────────────────────────────
    inputs = benchmark_inputs(vitals)

    # ── Leak band ────────────────────────────────────────────
    high_points = LEAK_PCT_HIGH_BASE
    if membership_common:
        high_points += MEMBERSHIP_BUMP
    if fees_common:
        high_points += FEES_BUMP
    if warranty_common:
        high_points += WARRANTY_BUMP
    high_points = min(high_points, LEAK_PCT_HIGH_CAP)

    pct_low = LEAK_PCT_LOW / 100.0
    pct_high = high_points / 100.0

    per_job_low = round(inputs.avg_ticket * pct_low, 2)
    per_job_high = round(inputs.avg_ticket * pct_high, 2)
    per_month_low = round(per_job_low * inputs.jobs_per_month, 2)
    per_month_high = round(per_job_high * inputs.jobs_per_month, 2)
    per_year_low = round(per_month_low * MONTHS_PER_YEAR, 2)
    per_year_high = round(per_month_high * MONTHS_PER_YEAR, 2)

    assumptions = [
        f"Jobs per month: {inputs.jobs_per_month} (midpoint of intake range, rounded)",
        f"Average ticket: ${inputs.avg_ticket:,.2f} (midpoint of intake range)",
        f"Competitors analysed: {count}; confidence {confidence}",
        f"Membership offered by {membership_share:.0%} of competitors "
        f"(common above {MEMBERSHIP_COMMON_THRESHOLD:.0%}: {'yes' if membership_common else 'no'})",
        f"Trip/service fee charged by {fees_share:.0%} of competitors "
        f"(common above {FEES_COMMON_THRESHOLD:.0%}: {'yes' if fees_common else 'no'})",
        f"Warranty offered by {warranty_share:.0%} of competitors "
        f"(common above {WARRANTY_COMMON_THRESHOLD:.0%}: {'yes' if warranty_common else 'no'})",
        f"Leak band: {LEAK_PCT_LOW}%–{high_points}% of average ticket "
        f"(base {LEAK_PCT_LOW}%–{LEAK_PCT_HIGH_BASE}%, cap {LEAK_PCT_HIGH_CAP}%)",
        f"Annualised over {MONTHS_PER_YEAR} months",
    ]

    return ScoreResult(
        confidence=confidence,
        price_corridor=price_corridor,
        membership_common=membership_common,
        fees_common=fees_common,
        warranty_common=warranty_common,
        inputs=inputs,
        leak=LeakEstimate(
            pct=Range(low=pct_low, high=pct_high),
            per_job=Range(low=per_job_low, high=per_job_high),
            per_month=Range(low=per_month_low, high=per_month_high),
            per_year=Range(low=per_year_low, high=per_year_high),
        ),
        assumptions=assumptions,
    )
