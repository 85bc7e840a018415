# Base
from paperleague.models.base import TimestampMixin, IdMixin, UuidMixin

# Reference data
from paperleague.models.instrument import Instrument
from paperleague.models.participant import Participant
from paperleague.models.portfolio import Portfolio
from paperleague.models.app_setting import AppSetting

# Ledger
from paperleague.models.trade import Trade

# Market Data
from paperleague.models.price import Price
from paperleague.models.fx_rate import FxRate

# Valuation & audit
from paperleague.models.daily_snapshot import DailySnapshot
from paperleague.models.job_run import JobRun

__all__ = [
    "TimestampMixin",
    "IdMixin",
    "UuidMixin",
    "Instrument",
    "Participant",
    "Portfolio",
    "AppSetting",
    "Trade",
    "Price",
    "FxRate",
    "DailySnapshot",
    "JobRun",
]
