"""
Domain records shared by the valuation engine, the repository and the pipeline.

These are plain dataclasses so the engine never depends on ORM sessions; the
SQL repository maps its rows onto them.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

Market = Literal["KR", "US", "INDEX"]
Currency = Literal["KRW", "USD"]
TradeSide = Literal["BUY", "SELL", "CLOSE"]
PriceSource = Literal["provider", "carry_forward"]
JobStatus = Literal["success", "partial", "failed"]


@dataclass(frozen=True)
class Instrument:
    id: str
    symbol: str
    market: Market
    currency: Currency
    name: str = ""
    provider_symbol: Optional[str] = None
    asset_type: str = "EQUITY"
    is_active: bool = True
    is_benchmark: bool = False
    benchmark_code: Optional[str] = None


@dataclass(frozen=True)
class Participant:
    id: str
    name: str
    color_tag: str = ""
    starting_cash_krw: Optional[float] = None


@dataclass(frozen=True)
class Portfolio:
    id: str
    participant_id: str
    base_currency: Currency = "KRW"
    is_active: bool = True


@dataclass(frozen=True)
class Trade:
    """Immutable ledger entry. Quantity is ignored for CLOSE."""
    id: int
    portfolio_id: str
    instrument: Instrument
    trade_date: date
    side: TradeSide
    quantity: float
    price: float
    fee_rate: Optional[float] = None
    slippage_bps: Optional[float] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Position:
    instrument: Instrument
    quantity: float
    avg_cost_local: float


@dataclass(frozen=True)
class Fill:
    """A trade as replay applied it: CLOSE quantity resolved, notional at the quoted price."""
    trade_id: int
    trade_date: date
    symbol: str
    side: TradeSide
    quantity: float
    notional_krw: float


@dataclass
class PortfolioState:
    cash_krw: float
    realized_pnl_krw: float
    holdings_value_krw: float
    unrealized_pnl_krw: float
    nav_krw: float
    positions: List[Position] = field(default_factory=list)
    # Symbols with no price on/before the valuation date, marked at average cost
    unpriced_instruments: List[str] = field(default_factory=list)
    fills: List[Fill] = field(default_factory=list)


@dataclass(frozen=True)
class PricePoint:
    date: date
    close: float
    source: Optional[str] = None


@dataclass(frozen=True)
class FxPoint:
    date: date
    rate: float
    source: Optional[str] = None


@dataclass(frozen=True)
class PriceRow:
    instrument_id: str
    date: date
    close: float
    source: PriceSource
    provider_used: Optional[str] = None


@dataclass(frozen=True)
class FxRateRow:
    pair: str
    date: date
    rate: float
    source: PriceSource
    provider_used: Optional[str] = None


@dataclass
class BenchmarkSeries:
    symbol: str
    return_by_date: Dict[date, Optional[float]]


@dataclass
class DailySnapshot:
    participant_id: str
    portfolio_id: str
    date: date
    nav_krw: float
    cash_krw: float
    holdings_value_krw: float
    realized_pnl_krw: float
    unrealized_pnl_krw: float
    total_return_pct: float
    spy_return_pct: Optional[float]
    kospi_return_pct: Optional[float]
    alpha_spy_pct: Optional[float]
    alpha_kospi_pct: Optional[float]
    ret_daily: Optional[float]
    vol_ann_252: Optional[float]
    sharpe_252: Optional[float]
    mdd_to_date: float
    beta_spy_252: Optional[float]
    beta_kospi_252: Optional[float]


@dataclass
class JobRun:
    job_name: str
    target_date: date
    status: JobStatus
    metrics: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
