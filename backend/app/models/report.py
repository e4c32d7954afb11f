import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import backref, relationship

from ..database import Base
from .case import GUID


class Report(Base):
    """Final audit content. One per successful job; a case accumulates them."""

    __tablename__ = "reports"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    case_id = Column(GUID(), ForeignKey("cases.id"), nullable=False, index=True)
    job_id = Column(GUID(), ForeignKey("jobs.id"), nullable=False, unique=True)
    share_id = Column(String(32), nullable=False, unique=True, index=True)
    content_json = Column(Text, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("Case", backref="reports")
    job = relationship("Job", backref=backref("report", uselist=False))
