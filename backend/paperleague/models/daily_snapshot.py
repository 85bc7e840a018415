from sqlalchemy import Column, Date, Float, ForeignKey, String, UniqueConstraint
from paperleague.core.database import Base
from paperleague.models.base import TimestampMixin

class DailySnapshot(Base, TimestampMixin):
    """
    One valuation and risk fact per participant per day.
    Returns are fractions (0.05 == 5%).
    """
    __tablename__ = "daily_snapshots"
    __table_args__ = (
        UniqueConstraint("participant_id", "date", name="uq_daily_snapshots_participant_date"),
    )

    participant_id = Column(String(36), ForeignKey("participants.id"), primary_key=True)
    date = Column(Date, primary_key=True)
    portfolio_id = Column(String(36), ForeignKey("portfolios.id"), nullable=False)

    # Unrounded: nav_krw == cash_krw + holdings_value_krw must hold on the stored row
    nav_krw = Column(Float, nullable=False)
    cash_krw = Column(Float, nullable=False)
    holdings_value_krw = Column(Float, nullable=False)
    realized_pnl_krw = Column(Float, nullable=False)
    unrealized_pnl_krw = Column(Float, nullable=False)

    total_return_pct = Column(Float, nullable=False)
    spy_return_pct = Column(Float)
    kospi_return_pct = Column(Float)
    alpha_spy_pct = Column(Float)
    alpha_kospi_pct = Column(Float)

    # Risk
    ret_daily = Column(Float)
    vol_ann_252 = Column(Float)
    sharpe_252 = Column(Float)
    mdd_to_date = Column(Float, nullable=False)
    beta_spy_252 = Column(Float)
    beta_kospi_252 = Column(Float)
