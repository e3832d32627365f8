"""Provider abstraction, typed provider errors, and the bounded retry wrapper."""

import json
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

from quote_engine.models.market import MarketQuote
from quote_engine.utils.config import RetryPolicy
from quote_engine.utils.logger import StructuredLogger

T = TypeVar("T")

logger = StructuredLogger("ProviderRetry")


class ProviderError(Exception):
    """Base class for a failed provider call."""

    label = "provider error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def retryable(self) -> bool:
        return False

    def with_provider(self, provider: str) -> "ProviderError":
        """Return the same kind of error with its message prefixed by the provider name."""
        return type(self)(f"{provider}: {self.message}")

    def __str__(self) -> str:
        return f"{self.label}: {self.message}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProviderError):
            return NotImplemented
        return type(self) is type(other) and self.__dict__ == other.__dict__

    def __hash__(self) -> int:
        return hash((type(self), self.message))


class TransportError(ProviderError):
    """The request never produced an HTTP response (timeout, DNS, reset...)."""

    label = "transport error"

    @property
    def retryable(self) -> bool:
        return True


class HttpStatusError(ProviderError):
    """The provider answered with a non-2xx status."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.status == 429 or 500 <= self.status <= 599

    def with_provider(self, provider: str) -> "HttpStatusError":
        return HttpStatusError(self.status, f"{provider}: {self.message}")

    def __str__(self) -> str:
        return f"http error ({self.status}): {self.message}"

    def __hash__(self) -> int:
        return hash((type(self), self.status, self.message))


class InvalidResponseError(ProviderError):
    """The body could not be understood."""

    label = "invalid provider response"


class UnsupportedPairError(ProviderError):
    """The provider does not quote this base/quote pair."""

    label = "unsupported trading pair"


class ProviderApi(ABC):
    """The three named rate sources the resolution service can consult."""

    @abstractmethod
    def fetch_fx_rate(self, base: str, quote: str) -> MarketQuote:
        """Fiat exchange rate for base priced in quote."""

    @abstractmethod
    def fetch_crypto_primary(self, base: str, quote: str) -> MarketQuote:
        """Crypto spot price from the preferred source."""

    @abstractmethod
    def fetch_crypto_secondary(self, base: str, quote: str) -> MarketQuote:
        """Crypto spot price from the fallback source."""


def execute_with_retry(
    provider_name: str,
    policy: RetryPolicy,
    operation: Callable[[], T],
    sleep_fn: Callable[[float], None],
) -> T:
    """
    Run a provider operation with bounded retries.

    The operation is attempted up to `policy.max_attempts` times (at least
    once). Non-retryable errors and the final failure are raised immediately,
    tagged with the provider name. Between attempts `sleep_fn` is called with
    the backoff delay in seconds.

    Args:
        provider_name: Name used to tag errors
        policy: Attempt count and backoff base
        operation: Zero-argument callable performing one attempt
        sleep_fn: Blocking sleep, injected so tests never wait

    Returns:
        Whatever the operation returns on success

    Raises:
        ProviderError: Tagged with provider_name
    """
    max_attempts = max(policy.max_attempts, 1)

    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except ProviderError as e:
            if not e.retryable or attempt == max_attempts:
                raise e.with_provider(provider_name) from e

            delay_ms = policy.backoff_for_attempt(attempt + 1)
            logger.warning(
                "Provider attempt failed, retrying",
                context={
                    "provider": provider_name,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay_ms": delay_ms,
                    "error": str(e),
                },
            )
            sleep_fn(delay_ms / 1000)

    raise InvalidResponseError(f"{provider_name}: exhausted retry attempts")


def extract_error_message(body: str, paths: Sequence[Sequence[str | int]]) -> str | None:
    """
    Find the first non-blank string at any of the given JSON paths.

    Args:
        body: Raw response body
        paths: Candidate key/index paths, tried in order

    Returns:
        The trimmed message, or None if the body is not JSON or has none
    """
    try:
        payload = json.loads(body)
    except ValueError:
        return None

    for path in paths:
        value: Any = payload
        for step in path:
            if isinstance(step, int) and isinstance(value, list) and len(value) > step:
                value = value[step]
            elif isinstance(step, str) and isinstance(value, dict):
                value = value.get(step)
            else:
                value = None
                break
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def http_status_error(status: int, body: str, paths: Sequence[Sequence[str | int]]) -> HttpStatusError:
    """Build an HttpStatusError using the body's message when there is one."""
    return HttpStatusError(status, extract_error_message(body, paths) or f"HTTP {status}")


def to_decimal(value: Any) -> Decimal | None:
    """Convert a JSON number or numeric string to Decimal, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, (str, float)):
        try:
            parsed = Decimal(str(value).strip())
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    return None
