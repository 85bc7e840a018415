"""
Provider registry.

MARKET_DATA_PROVIDERS is a comma separated, ordered chain of provider tokens
(e.g. "TWELVE,YAHOO"). Each token resolves to a ProviderHandle; a handle whose
provider could not be built stays in the chain as unavailable so the job
metrics show why it was skipped.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from paperleague.core.config import Settings, settings as default_settings
from paperleague.core.exceptions import ProviderConfigurationError, ProviderError
from paperleague.services.market_data.base import MarketDataProvider
from paperleague.services.market_data.mock_provider import MockProvider
from paperleague.services.market_data.twelve_data_provider import TwelveDataProvider
from paperleague.services.market_data.yfinance_provider import YahooProvider

PROVIDERS: Dict[str, Optional[Callable[[Settings], MarketDataProvider]]] = {
    "TWELVE": lambda s: TwelveDataProvider(api_key=s.TWELVE_DATA_API_KEY, timeout_sec=s.PROVIDER_TIMEOUT_SECONDS),
    "YAHOO": lambda s: YahooProvider(timeout_sec=s.PROVIDER_TIMEOUT_SECONDS),
    "MOCK": lambda s: MockProvider(),
    "ALPHA": None,
}

ALIASES = {"REAL": "TWELVE"}

DEFAULT_PROVIDER = "TWELVE"


@dataclass
class ProviderHandle:
    name: str
    provider: Optional[MarketDataProvider] = None
    init_error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.provider is not None


@dataclass
class ProviderResolution:
    raw_input: str
    handles: List[ProviderHandle] = field(default_factory=list)
    invalid_tokens: List[str] = field(default_factory=list)

    @property
    def configured_chain(self) -> List[str]:
        return [h.name for h in self.handles]


def parse_provider_tokens(raw: str):
    """Split, upper-case, apply aliases and de-duplicate. Returns (names, invalid)."""
    names: List[str] = []
    invalid: List[str] = []
    for token in raw.split(","):
        token = token.strip().upper()
        if not token:
            continue
        token = ALIASES.get(token, token)
        if token not in PROVIDERS:
            invalid.append(token)
        elif token not in names:
            names.append(token)
    if not names and not invalid:
        names.append(DEFAULT_PROVIDER)
    return names, invalid


def build_handle(name: str, config: Settings) -> ProviderHandle:
    factory = PROVIDERS.get(name)
    if factory is None:
        return ProviderHandle(name=name, init_error=f"Provider '{name}' is not implemented yet.")
    try:
        return ProviderHandle(name=name, provider=factory(config))
    except ProviderError as exc:
        return ProviderHandle(name=name, init_error=str(exc))


def resolve_providers(config: Optional[Settings] = None) -> ProviderResolution:
    """Build the configured chain. Raises ProviderConfigurationError on unknown tokens."""
    config = config or default_settings
    raw = config.requested_providers_raw
    names, invalid = parse_provider_tokens(raw)
    if invalid:
        allowed = ", ".join(PROVIDERS)
        raise ProviderConfigurationError(
            f"Invalid provider token(s): {', '.join(invalid)}. "
            f"Allowed values: {allowed} (REAL alias = TWELVE)."
        )
    return ProviderResolution(
        raw_input=raw,
        handles=[build_handle(name, config) for name in names],
        invalid_tokens=invalid,
    )


def get_market_data_provider(config: Optional[Settings] = None) -> MarketDataProvider:
    """First available provider in the configured chain."""
    resolution = resolve_providers(config)
    for handle in resolution.handles:
        if handle.provider is not None:
            return handle.provider
    reasons = "; ".join(f"{h.name}: {h.init_error}" for h in resolution.handles)
    raise ProviderError(f"No available providers. {reasons}")
