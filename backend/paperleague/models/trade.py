from sqlalchemy import Column, Date, ForeignKey, Index, Numeric, String, Text
from paperleague.core.database import Base
from paperleague.models.base import IdMixin, TimestampMixin

class Trade(Base, IdMixin, TimestampMixin):
    """
    Append-only ledger entry.
    Replay order is (trade_date, created_at, id).
    """
    __tablename__ = "trades"
    __table_args__ = (
        Index("ix_trades_portfolio_ledger_order", "portfolio_id", "trade_date", "created_at", "id"),
    )

    portfolio_id = Column(String(36), ForeignKey("portfolios.id"), nullable=False)
    instrument_id = Column(String(36), ForeignKey("instruments.id"), nullable=False)
    trade_date = Column(Date, nullable=False)
    side = Column(String(5), nullable=False)  # BUY, SELL, CLOSE
    quantity = Column(Numeric(18, 4), nullable=False)
    price = Column(Numeric(18, 6), nullable=False)
    fee_rate = Column(Numeric(10, 6))
    slippage_bps = Column(Numeric(10, 4))
    note = Column(Text)
