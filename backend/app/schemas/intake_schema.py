"""Pydantic schemas for the intake questionnaire and the job/case API."""

from __future__ import annotations

from typing import Any, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

Availability = Literal["Same Day", "Next Day", "2-3 Days", "1 Week+"]


class ServiceItem(BaseModel):
    name: str
    price: Optional[str] = None


class Vitals(BaseModel):
    """Normalized business vitals stored on the case.

    Every field is optional — the scoring engines apply numeric fallbacks.
    Extra keys from older intake versions are kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    jobs_min: Optional[float] = None
    jobs_max: Optional[float] = None
    ticket_min: Optional[float] = None
    ticket_max: Optional[float] = None
    availability: Optional[str] = None

    services: List[ServiceItem] = Field(default_factory=list)
    trip_fee: Optional[str] = None
    warranty: Optional[str] = None
    has_membership: bool = False
    has_priority: bool = False


class CaseCreate(BaseModel):
    """Intake questionnaire as submitted by the web form."""

    website_url: str = Field(..., min_length=4, max_length=2048)
    street_address: str = Field(default="", max_length=255)
    city: str = Field(..., min_length=2, max_length=255)
    state_province: str = Field(..., min_length=2, max_length=255)
    postal_code: str = Field(default="", max_length=32)
    what_they_sell: str = Field(..., min_length=3, max_length=512)

    jobs_min: float = Field(..., ge=0)
    jobs_max: float = Field(..., ge=0)
    ticket_min: float = Field(..., ge=0)
    ticket_max: float = Field(..., ge=0)
    availability: Availability = "Same Day"

    # Pro inputs
    services: Optional[List[ServiceItem]] = None
    trip_fee: Optional[str] = None
    warranty: Optional[str] = None
    has_membership: Optional[bool] = None
    has_priority: Optional[bool] = None

    @field_validator("website_url")
    @classmethod
    def website_has_scheme(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped.startswith(("http://", "https://")):
            stripped = f"https://{stripped}"
        return stripped

    @field_validator("what_they_sell", "city", "state_province")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    def location_label(self) -> str:
        parts = [self.street_address.strip(), self.city, f"{self.state_province} {self.postal_code}".strip()]
        return ", ".join(p for p in parts if p)

    def to_vitals(self) -> Vitals:
        return Vitals(
            jobs_min=self.jobs_min,
            jobs_max=self.jobs_max,
            ticket_min=self.ticket_min,
            ticket_max=self.ticket_max,
            availability=self.availability,
            services=self.services or [],
            trip_fee=(self.trip_fee or "").strip() or None,
            warranty=(self.warranty or "").strip() or None,
            has_membership=bool(self.has_membership),
            has_priority=bool(self.has_priority),
        )


class CaseResponse(BaseModel):
    case_id: UUID
    location: str
    what_they_sell: str
    vitals: dict[str, Any]


class RunResponse(BaseModel):
    job_id: UUID


class JobStatusResponse(BaseModel):
    """What the status poller sees."""

    status: Literal["pending", "running", "completed", "failed"]
    stage: Optional[str] = None
    progress: int = 0
    error: Optional[str] = None
    report_share_id: Optional[str] = None
