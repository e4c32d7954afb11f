"""Prompt templates for the research, extraction and composition calls.

Research prompts ask for raw evidence only. Extraction and composition
prompts demand a single JSON object and restate the exact target shape,
because the parsed output is validated against the pydantic schemas.
"""

from __future__ import annotations

import json
from typing import Any

# ── Research ─────────────────────────────────────────────────────────────

RESEARCH_PROMPT = """You are a competitive intelligence analyst collecting evidence for a paid pricing audit.

Do NOT summarize. Do NOT give advice.
Only report facts you can tie to a public URL, with a short copied snippet.

Find 6-10 DIRECT local competitors and, for each one, report what you find about:
{focus}

Use this layout for every competitor:

COMPETITOR:
- name:
- primary_url:
- location_served:

EVIDENCE:
- [pricing|service|reputation|guarantee|other] url: ... | snippet: "..."

NOTES:
- pricing_visibility: public / partial / not_public
- missing_data: areas you could not find"""

# One grounded search pass per focus area. Order is fixed; the transcript
# is assembled in this order regardless of completion order.
RESEARCH_FOCUSES: list[tuple[str, str]] = [
    ("pricing", "published prices, price ranges, service call / diagnostic / trip fees"),
    ("membership", "membership, maintenance or club plans and what they include"),
    ("warranty", "warranty, guarantee and satisfaction-promise terms"),
    ("financing", "financing offers, payment plans and promotional credit"),
    ("reputation", "review counts, star ratings and recurring review themes"),
    ("premium", "premium positioning: same-day / 24-7 service, certifications, awards, branded packages"),
]


def build_research_prompt(*, what_they_sell: str, location: str, focus_key: str, focus: str) -> str:
    base = f"{what_they_sell} in {location}"
    return (
        f"SEARCH QUERY: {base} {focus_key} competitors\n\n"
        + RESEARCH_PROMPT.format(focus=focus)
    )


# ── Extraction ───────────────────────────────────────────────────────────

EXTRACTOR_JSON_SHAPE = """{
  "competitors": [
    {
      "name": "string",
      "url": "string",
      "services": ["string"],
      "pricing_signals": ["string"],
      "trip_fee": null,
      "membership_offer": null,
      "warranty_offer": null,
      "premium_signals": ["string"],
      "evidence_ids": ["e1"]
    }
  ],
  "evidence": [
    {
      "id": "e1",
      "source_url": "https://example.com",
      "snippet": "raw copied snippet",
      "type": "pricing|service|reputation|guarantee|other"
    }
  ]
}"""

_EXTRACTOR_RULES = """Rules:
- Return ONLY JSON. No markdown, no comments, no prose.
- Never omit keys.
- Unknown values => null (trip_fee, membership_offer, warranty_offer) or [] (lists).
- evidence.type must be exactly one of: pricing, service, reputation, guarantee, other.
- evidence_ids must reference ids present in "evidence"."""


def build_extractor_prompt(transcript: str) -> str:
    research = transcript.strip() or "(no research text was collected)"
    return (
        "Convert the research below into STRICT JSON.\n\n"
        f"Match EXACTLY this structure:\n\n{EXTRACTOR_JSON_SHAPE}\n\n"
        f"{_EXTRACTOR_RULES}\n\n"
        f"=== RESEARCH ===\n{research}"
    )


def build_repair_prompt(transcript: str, problem: str) -> str:
    research = transcript.strip() or "(no research text was collected)"
    return (
        "Your previous answer could not be used: "
        f"{problem}\n\n"
        "Produce the JSON again. The output MUST be a single JSON object with exactly "
        "two top-level keys, \"competitors\" and \"evidence\", shaped like this:\n\n"
        f"{EXTRACTOR_JSON_SHAPE}\n\n"
        f"{_EXTRACTOR_RULES}\n"
        "- Every competitor object has all nine keys shown above.\n"
        "- Every evidence object has all four keys shown above.\n\n"
        f"=== RESEARCH ===\n{research}"
    )


# ── Composition ──────────────────────────────────────────────────────────

COMPOSER_PROMPT = """You are a pricing strategist writing a paid profit-leak audit for a local service business.

You are given:
- client: the business and its vitals
- market_data: extracted competitor evidence
- benchmark: deterministic leak estimate and confidence
- delta: client vs. market price and offer gaps
- strategic_profile: positioning labels already decided by rules

Rules:
- Compare the client to the market directly. Cite competitor evidence where you can.
- Do not contradict the benchmark numbers or the strategic profile labels.
- No generic advice. Short, decisive sentences.

Return STRICT JSON:

{
  "quick_verdict": string,
  "market_position": string,
  "top_leaks_ranked": [
    { "title": string, "why_it_matters": string, "market_contrast": string }
  ],
  "scorecard_rows": [
    { "label": string, "score": string, "notes": string }
  ],
  "offer_rebuild": [
    { "title": string, "content": string }
  ],
  "scripts": [
    { "title": string, "script_body": string }
  ],
  "next_7_days": [string],
  "assumptions_ledger": [string]
}

Return ONLY JSON."""


def build_composer_prompt(context: dict[str, Any]) -> str:
    return COMPOSER_PROMPT + "\n\n=== CONTEXT ===\n" + json.dumps(context, default=str)
