import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.types import CHAR, TypeDecorator

from ..database import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses CHAR(36) to store UUIDs as strings, compatible with all backends
    including SQLite.
    """

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return uuid.UUID(value)
        return value


class Case(Base):
    """Intake record for one audit engagement. Read-only to the pipeline."""

    __tablename__ = "cases"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    website_url = Column(String(2048), nullable=False)
    location = Column(String(512), nullable=False)
    what_they_sell = Column(String(512), nullable=False)

    # Normalized vitals (jobs/ticket ranges, availability, offer flags)
    vitals_json = Column(Text, nullable=False, default="{}")
    # Intake payload as submitted, after normalization
    pro_inputs_json = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
