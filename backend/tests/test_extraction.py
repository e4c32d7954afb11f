"""Extraction stage tests — attempt, single repair, empty fallback."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import json

from app.agents.audit_agent.extraction import ExtractionState, parse_extracted, run_extraction
from app.services.openai_client import GenerationError
from fakes import FAST_CONFIG, HANG, FakeGenerativeClient, competitor, extraction_json

TRANSCRIPT = "### PRICING\nAcme Plumbing charges $129 for a service call. https://acme.example.com/pricing"


def _run(client, transcript=TRANSCRIPT):
    return asyncio.run(run_extraction(client, transcript, config=FAST_CONFIG))


def test_parse_extracted_accepts_nulls_for_lists():
    raw = json.dumps({"competitors": [dict(competitor(), services=None, name=None)], "evidence": None})
    data, problem = parse_extracted(raw)
    assert problem is None
    assert data.competitors[0].services == []
    assert data.competitors[0].name == ""
    assert data.evidence == []


def test_parse_extracted_rejects_unknown_evidence_type():
    raw = json.dumps({"competitors": [], "evidence": [{"id": "e1", "snippet": "x", "type": "rumour"}]})
    data, problem = parse_extracted(raw)
    assert data is None
    assert "evidence" in problem


def test_parse_extracted_reads_numbers_as_text():
    raw = json.dumps(
        {
            "competitors": [
                competitor("Acme Plumbing"),
                competitor("Bolt Rooter", trip_fee=89, pricing_signals=[99, "$149 drain"]),
            ],
            "evidence": [{"id": 1, "source_url": "https://bolt.example.com", "snippet": 89, "type": "pricing"}],
        }
    )
    data, problem = parse_extracted(raw)
    assert problem is None
    bolt = data.competitors[1]
    assert bolt.trip_fee == "89"
    assert bolt.pricing_signals == ["99", "$149 drain"]
    assert data.evidence[0].id == "1"
    assert data.evidence[0].snippet == "89"


def test_parse_extracted_folds_research_focus_labels():
    evidence = [
        {"id": "e1", "snippet": "Club plan $15/mo", "type": "membership"},
        {"id": "e2", "snippet": "2-year warranty", "type": "Warranty"},
        {"id": "e3", "snippet": "0% for 12 months", "type": "financing"},
        {"id": "e4", "snippet": "24/7 service", "type": "premium"},
    ]
    data, problem = parse_extracted(extraction_json([competitor()], evidence))
    assert problem is None
    assert [e.type for e in data.evidence] == ["service", "guarantee", "other", "service"]


def test_number_slip_does_not_spend_the_repair():
    slipped = extraction_json([competitor(trip_fee=89, pricing_signals=[129])])
    client = FakeGenerativeClient(extraction=[slipped])
    outcome = _run(client)

    assert outcome.state is ExtractionState.SUCCEEDED
    assert outcome.attempts == 1
    assert outcome.data.competitors[0].trip_fee == "89"
    assert outcome.data.competitors[0].pricing_signals == ["129"]


def test_parse_extracted_rejects_non_json():
    data, problem = parse_extracted("Sorry, I can't help with that.")
    assert data is None
    assert problem == "response was not a JSON object"


def test_first_attempt_success():
    client = FakeGenerativeClient(extraction=[extraction_json([competitor(pricing_signals=["$129"])])])
    outcome = _run(client)

    assert outcome.state is ExtractionState.SUCCEEDED
    assert outcome.attempts == 1
    assert outcome.errors == []
    assert outcome.data.competitors[0].pricing_signals == ["$129"]
    assert len(client.extraction_calls) == 1
    assert "=== RESEARCH ===" in client.extraction_calls[0]
    assert TRANSCRIPT in client.extraction_calls[0]


def test_fenced_json_is_accepted():
    client = FakeGenerativeClient(extraction=["```json\n" + extraction_json([competitor()]) + "\n```"])
    assert _run(client).state is ExtractionState.SUCCEEDED


def test_malformed_output_triggers_exactly_one_repair():
    client = FakeGenerativeClient(extraction=["{not valid json", extraction_json([competitor()])])
    outcome = _run(client)

    assert outcome.state is ExtractionState.SUCCEEDED
    assert outcome.attempts == 2
    assert len(client.extraction_calls) == 2
    repair_prompt = client.extraction_calls[1]
    assert "could not be used" in repair_prompt
    assert "response was not a JSON object" in repair_prompt
    assert len(outcome.errors) == 1


def test_both_attempts_fail_falls_back_to_empty():
    client = FakeGenerativeClient(extraction=["garbage", "still garbage", extraction_json([competitor()])])
    outcome = _run(client)

    assert outcome.state is ExtractionState.FALLBACK
    assert outcome.attempts == 2
    assert outcome.data.model_dump() == {"competitors": [], "evidence": []}
    assert len(client.extraction_calls) == 2
    assert len(client.extraction) == 1  # third scripted answer never requested


def test_schema_failure_is_repaired():
    bad = json.dumps({"competitors": "three plumbers", "evidence": []})
    client = FakeGenerativeClient(extraction=[bad, extraction_json()])
    outcome = _run(client)
    assert outcome.state is ExtractionState.SUCCEEDED
    assert "schema validation failed" in outcome.errors[0]


def test_timeout_counts_as_failed_attempt():
    client = FakeGenerativeClient(extraction=[HANG, extraction_json([competitor()])])
    outcome = _run(client)
    assert outcome.state is ExtractionState.SUCCEEDED
    assert "timed out" in outcome.errors[0]


def test_call_errors_fall_back():
    client = FakeGenerativeClient(extraction=[GenerationError("HTTP 500"), GenerationError("HTTP 503")])
    outcome = _run(client)
    assert outcome.state is ExtractionState.FALLBACK
    assert outcome.diagnostics()["state"] == "fallback"
    assert outcome.diagnostics()["competitors"] == 0


def test_empty_transcript_still_prompts():
    client = FakeGenerativeClient(extraction=[extraction_json()])
    _run(client, transcript="")
    assert "(no research text was collected)" in client.extraction_calls[0]
