from sqlalchemy import Column, Date, ForeignKey, Numeric, String, UniqueConstraint
from paperleague.core.database import Base
from paperleague.models.base import TimestampMixin

class Price(Base, TimestampMixin):
    """
    Daily close per instrument.
    source is 'provider' or 'carry_forward'.
    """
    __tablename__ = "prices"
    __table_args__ = (
        UniqueConstraint("instrument_id", "date", name="uq_prices_instrument_date"),
    )

    instrument_id = Column(String(36), ForeignKey("instruments.id"), primary_key=True)
    date = Column(Date, primary_key=True)
    close = Column(Numeric(18, 6), nullable=False)
    source = Column(String(20), nullable=False, default="provider")
    provider_used = Column(String(20))
