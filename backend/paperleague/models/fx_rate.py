from sqlalchemy import Column, Date, Numeric, String, UniqueConstraint
from paperleague.core.database import Base
from paperleague.models.base import TimestampMixin

class FxRate(Base, TimestampMixin):
    __tablename__ = "fx_rates"
    __table_args__ = (
        UniqueConstraint("pair", "date", name="uq_fx_rates_pair_date"),
    )

    pair = Column(String(10), primary_key=True)  # USDKRW
    date = Column(Date, primary_key=True)
    rate = Column(Numeric(18, 6), nullable=False)
    source = Column(String(20), nullable=False, default="provider")
    provider_used = Column(String(20))
