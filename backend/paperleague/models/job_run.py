from sqlalchemy import Column, Date, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from paperleague.core.database import Base
from paperleague.models.base import IdMixin, TimestampMixin

class JobRun(Base, IdMixin, TimestampMixin):
    """
    Audit record for every pipeline stage execution.
    """
    __tablename__ = "job_runs"

    job_name = Column(String(50), nullable=False, index=True)  # update_prices, update_fx, generate_snapshots
    target_date = Column(Date, nullable=False, index=True)
    status = Column(String(10), nullable=False)  # success, partial, failed
    metrics = Column(JSONB, nullable=False, default=dict)
    error_message = Column(Text)
