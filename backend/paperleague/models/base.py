import uuid

from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.orm import declarative_mixin


@declarative_mixin
class TimestampMixin:
    # Stamped by the database clock
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


@declarative_mixin
class IdMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)


@declarative_mixin
class UuidMixin:
    """Text ids for participants, portfolios and instruments, shared with the web app."""
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
