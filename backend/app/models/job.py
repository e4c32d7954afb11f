import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from .case import GUID


class Job(Base):
    __tablename__ = "jobs"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    case_id = Column(GUID(), ForeignKey("cases.id"), nullable=False, index=True)

    status = Column(String(32), nullable=False, default="pending", index=True)  # pending | running | completed | failed
    stage = Column(String(128), nullable=True)
    progress = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    diagnostics_json = Column(Text, nullable=True)

    # Number of times the queue handed this job to a worker
    attempts = Column(Integer, nullable=False, default=0)
    # Lease taken by the queue; status itself is written by the orchestrator
    claimed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    finished_at = Column(DateTime, nullable=True)

    case = relationship("Case", backref="jobs")
