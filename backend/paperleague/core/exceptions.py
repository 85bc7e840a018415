"""
Exception hierarchy shared by the valuation engine, providers and pipeline.
"""


class PaperLeagueError(Exception):
    """Base error for the paper league platform."""


class LedgerInconsistency(PaperLeagueError):
    """A trade cannot be applied to the portfolio state it is replayed onto."""

    def __init__(self, message: str, trade_id: object = None):
        super().__init__(message)
        self.trade_id = trade_id


class MissingMarketDataError(PaperLeagueError):
    """A required price or FX rate is absent and has no fallback."""


class MissingFxRateError(MissingMarketDataError):
    """No FX rate exists on or before the requested date."""

    def __init__(self, pair: str, on_date: object):
        super().__init__(f"Missing {pair} FX for {on_date}")
        self.pair = pair
        self.on_date = on_date


class ProviderError(PaperLeagueError):
    """A market data provider could not produce a value."""


class TransientProviderError(ProviderError):
    """A provider call failed on the network and may succeed when retried."""


class ProviderConfigurationError(PaperLeagueError):
    """The configured provider chain contains unknown provider names."""


class PipelinePreconditionError(PaperLeagueError):
    """A pipeline stage cannot run at all for the requested date."""


class TradeValidationError(PaperLeagueError):
    """A prospective trade breaks an entry rule and must not be recorded."""


class InvalidValuationError(PaperLeagueError):
    """A starting cash or NAV that returns are measured against is not positive."""
