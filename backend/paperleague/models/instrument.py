from sqlalchemy import Boolean, Column, String, UniqueConstraint
from paperleague.core.database import Base
from paperleague.models.base import UuidMixin, TimestampMixin

class Instrument(Base, UuidMixin, TimestampMixin):
    """
    Tradable symbol or benchmark index.
    Listing order (market, symbol) is the order the price job walks.
    """
    __tablename__ = "instruments"
    __table_args__ = (
        UniqueConstraint("market", "symbol", name="uq_instruments_market_symbol"),
    )

    symbol = Column(String(20), nullable=False, index=True)
    name = Column(String(200), nullable=False, default="")
    market = Column(String(10), nullable=False)  # KR, US, INDEX
    currency = Column(String(3), nullable=False)  # KRW, USD
    asset_type = Column(String(20), nullable=False, default="EQUITY")
    provider_symbol = Column(String(40))  # Hint tried first by providers
    is_active = Column(Boolean, nullable=False, default=True)
    is_benchmark = Column(Boolean, nullable=False, default=False)
    benchmark_code = Column(String(10), unique=True)  # SPY, KOSPI
