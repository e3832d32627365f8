"""Configuration management for the quote engine."""

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from quote_engine.models.market import ValidationError, normalize_fx_symbol

# Load environment variables from .env file
load_dotenv()

FX_TTL_SECS = 24 * 60 * 60
CRYPTO_TTL_SECS = 5 * 60

PROVIDER_TIMEOUT_SECS = 6
PROVIDER_RETRY_MAX_ATTEMPTS = 3
PROVIDER_RETRY_BASE_BACKOFF_MS = 200
MAX_BACKOFF_SHIFT = 8

MARKET_CACHE_DIR_ENV = "MARKET_CACHE_DIR"
ALFRED_WORKFLOW_CACHE_ENV = "alfred_workflow_cache"
ALFRED_WORKFLOW_DATA_ENV = "alfred_workflow_data"
DEFAULT_CACHE_DIR_NAME = "nils-market-cli"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry settings for a single provider call."""

    max_attempts: int = PROVIDER_RETRY_MAX_ATTEMPTS
    base_backoff_ms: int = PROVIDER_RETRY_BASE_BACKOFF_MS

    def backoff_for_attempt(self, attempt: int) -> int:
        """
        Delay in milliseconds to wait before the given 1-based attempt.

        The first attempt never waits; each later attempt doubles the base
        delay, capped at 2**8 times the base.
        """
        if attempt <= 1:
            return 0
        shift = min(attempt - 2, MAX_BACKOFF_SHIFT)
        return self.base_backoff_ms * (1 << shift)


@dataclass
class RuntimeConfig:
    """Settings consumed by the resolution service and HTTP providers."""

    cache_dir: Path
    provider_timeout_secs: float = PROVIDER_TIMEOUT_SECS
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    default_fiat: str = "USD"

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """Build configuration from the process environment."""
        return cls.from_pairs(os.environ)

    @classmethod
    def from_pairs(cls, env: Mapping[str, str]) -> "RuntimeConfig":
        """
        Build configuration from an explicit mapping of variables.

        Args:
            env: Environment-style mapping (name -> value)

        Returns:
            RuntimeConfig with defaults for anything not set
        """
        retry_policy = RetryPolicy(
            max_attempts=int(
                env.get("MARKET_RETRY_MAX_ATTEMPTS", str(PROVIDER_RETRY_MAX_ATTEMPTS))
            ),
            base_backoff_ms=int(
                env.get("MARKET_RETRY_BASE_BACKOFF_MS", str(PROVIDER_RETRY_BASE_BACKOFF_MS))
            ),
        )
        return cls(
            cache_dir=resolve_cache_dir(env),
            provider_timeout_secs=float(
                env.get("MARKET_PROVIDER_TIMEOUT_SECS", str(PROVIDER_TIMEOUT_SECS))
            ),
            retry_policy=retry_policy,
            default_fiat=env.get("MARKET_DEFAULT_FIAT", "USD").strip() or "USD",
        )

    def validate(self) -> bool:
        """
        Validate configuration.

        Returns:
            True if configuration is valid

        Raises:
            ValueError if configuration is invalid
        """
        if self.provider_timeout_secs <= 0:
            raise ValueError("MARKET_PROVIDER_TIMEOUT_SECS must be positive")
        if self.retry_policy.max_attempts < 1:
            raise ValueError("MARKET_RETRY_MAX_ATTEMPTS must be at least 1")
        if self.retry_policy.base_backoff_ms < 0:
            raise ValueError("MARKET_RETRY_BASE_BACKOFF_MS must not be negative")
        try:
            normalize_fx_symbol(self.default_fiat, "default_fiat")
        except ValidationError as e:
            raise ValueError(f"Invalid MARKET_DEFAULT_FIAT: {e}") from e
        return True


def resolve_cache_dir(env: Mapping[str, str]) -> Path:
    """
    Pick the cache directory.

    Precedence: MARKET_CACHE_DIR, then the launcher's workflow cache dir,
    then its workflow data dir, then a directory under the system temp dir.
    Blank values are ignored.
    """
    for name in (MARKET_CACHE_DIR_ENV, ALFRED_WORKFLOW_CACHE_ENV, ALFRED_WORKFLOW_DATA_ENV):
        value = env.get(name, "").strip()
        if value:
            return Path(value)
    return Path(tempfile.gettempdir()) / DEFAULT_CACHE_DIR_NAME


# Global config instance
config = RuntimeConfig.from_env()
