"""Pytest configuration and fixtures."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from quote_engine.models.market import MarketQuote
from quote_engine.services.providers.base import HttpStatusError, ProviderApi, ProviderError, UnsupportedPairError
from quote_engine.utils.config import RuntimeConfig

QUOTE_TIME = datetime(2026, 2, 10, 12, 0, 0, tzinfo=UTC)


def fixed_now() -> datetime:
    return datetime(2026, 2, 10, 12, 5, 0, tzinfo=UTC)


class FakeProviders(ProviderApi):
    """
    Network-free provider double that counts calls.

    Each source is configured with either a ProviderError (raised for every
    pair) or a mapping of (base, quote) to a price or ProviderError.
    """

    def __init__(self, fx=None, primary=None, secondary=None):
        self.fx = fx if fx is not None else {}
        self.primary = primary if primary is not None else {}
        self.secondary = secondary if secondary is not None else {}
        self.fx_calls = 0
        self.primary_calls = 0
        self.secondary_calls = 0

    @property
    def total_calls(self) -> int:
        return self.fx_calls + self.primary_calls + self.secondary_calls

    def fetch_fx_rate(self, base, quote):
        self.fx_calls += 1
        return self._answer("frankfurter", self.fx, base, quote)

    def fetch_crypto_primary(self, base, quote):
        self.primary_calls += 1
        return self._answer("coinbase", self.primary, base, quote)

    def fetch_crypto_secondary(self, base, quote):
        self.secondary_calls += 1
        return self._answer("kraken", self.secondary, base, quote)

    @staticmethod
    def _answer(provider, results, base, quote):
        if isinstance(results, ProviderError):
            raise results
        if (base, quote) not in results:
            if provider == "frankfurter":
                raise HttpStatusError(400, "unsupported fx pair")
            raise UnsupportedPairError(f"{base}/{quote}")
        value = results[(base, quote)]
        if isinstance(value, ProviderError):
            raise value
        return MarketQuote(provider=provider, unit_price=Decimal(value), fetched_at=QUOTE_TIME)


@pytest.fixture
def runtime_config(tmp_path):
    """Runtime configuration with an isolated cache directory."""
    return RuntimeConfig(cache_dir=tmp_path)


@pytest.fixture
def market_providers():
    """Fixture quotes used across the expression tests."""
    return FakeProviders(
        fx={("USD", "JPY"): "150", ("EUR", "JPY"): "160"},
        primary={
            ("BTC", "JPY"): "10000000",
            ("ETH", "JPY"): "350000",
            ("BTC", "USD"): "60000",
            ("ETH", "USD"): "3000",
        },
        secondary=UnsupportedPairError("kraken disabled in tests"),
    )
