"""FastAPI dependencies supplying configuration, providers and the clock."""

from collections.abc import Callable
from datetime import UTC, datetime
from functools import lru_cache

from quote_engine.services.providers.base import ProviderApi
from quote_engine.services.providers.http import HttpProviders
from quote_engine.utils.config import RuntimeConfig, config


def get_runtime_config() -> RuntimeConfig:
    """Return the process-wide runtime configuration."""
    return config


@lru_cache(maxsize=1)
def get_providers() -> ProviderApi:
    """
    Return the shared HTTP providers.

    One instance (and one requests session) is reused across requests.
    """
    return HttpProviders(config)


def utc_now() -> datetime:
    return datetime.now(UTC)


def get_clock() -> Callable[[], datetime]:
    """Clock used for cache freshness; overridden in tests."""
    return utc_now
