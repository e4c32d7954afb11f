"""Structured market evidence produced by the extraction stage.

Every field has a safe default so a partially populated model response
still validates. ``null`` for a list or string field is read as "empty",
and bare numbers in text fields (``"trip_fee": 89``) are read as text.
Research focus labels are folded onto the evidence types; any other
``type`` outside the allowed set is a validation failure.
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

EvidenceType = Literal["pricing", "service", "reputation", "guarantee", "other"]

# Research pass categories the extractor tends to copy through as types
EVIDENCE_TYPE_ALIASES = {
    "membership": "service",
    "premium": "service",
    "warranty": "guarantee",
    "financing": "other",
}


def _number_as_text(v: Any) -> Any:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class Competitor(BaseModel):
    name: str = ""
    url: str = ""
    services: List[str] = Field(default_factory=list)
    pricing_signals: List[str] = Field(default_factory=list)
    trip_fee: Optional[str] = None
    membership_offer: Optional[str] = None
    warranty_offer: Optional[str] = None
    premium_signals: List[str] = Field(default_factory=list)
    evidence_ids: List[str] = Field(default_factory=list)

    @field_validator("services", "pricing_signals", "premium_signals", "evidence_ids", mode="before")
    @classmethod
    def null_list_is_empty(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [_number_as_text(item) for item in v]
        return v

    @field_validator("name", "url", mode="before")
    @classmethod
    def null_text_is_empty(cls, v: Any) -> Any:
        return "" if v is None else _number_as_text(v)

    @field_validator("trip_fee", "membership_offer", "warranty_offer", mode="before")
    @classmethod
    def number_offer_is_text(cls, v: Any) -> Any:
        return _number_as_text(v)


class Evidence(BaseModel):
    id: str = ""
    source_url: str = ""
    snippet: str = ""
    type: EvidenceType = "other"

    @field_validator("id", "source_url", "snippet", mode="before")
    @classmethod
    def null_text_is_empty(cls, v: Any) -> Any:
        return "" if v is None else _number_as_text(v)

    @field_validator("type", mode="before")
    @classmethod
    def fold_focus_labels(cls, v: Any) -> Any:
        if isinstance(v, str):
            label = v.strip().lower()
            return EVIDENCE_TYPE_ALIASES.get(label, label)
        return v


class ExtractedData(BaseModel):
    competitors: List[Competitor] = Field(default_factory=list)
    evidence: List[Evidence] = Field(default_factory=list)

    @field_validator("competitors", "evidence", mode="before")
    @classmethod
    def null_list_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @classmethod
    def empty(cls) -> "ExtractedData":
        return cls(competitors=[], evidence=[])
