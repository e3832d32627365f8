"""HTTP-backed rate sources with bounded retries."""

import time
from collections.abc import Callable

import requests

from quote_engine.models.market import MarketQuote
from quote_engine.services.providers import coinbase, frankfurter, kraken
from quote_engine.services.providers.base import ProviderApi, ProviderError, execute_with_retry
from quote_engine.utils.config import RuntimeConfig
from quote_engine.utils.logger import StructuredLogger

FetchOnce = Callable[[requests.Session, str, str, float], MarketQuote]


class HttpProviders(ProviderApi):
    """Frankfurter for fiat, Coinbase then Kraken for crypto."""

    def __init__(
        self,
        runtime_config: RuntimeConfig,
        session: requests.Session | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the providers.

        Args:
            runtime_config: Supplies the request timeout and retry policy
            session: Optional shared requests session
            sleep_fn: Backoff sleep (seconds)
        """
        self.session = session or requests.Session()
        self.timeout = runtime_config.provider_timeout_secs
        self.retry_policy = runtime_config.retry_policy
        self.sleep_fn = sleep_fn
        self.logger = StructuredLogger("HttpProviders")

    def fetch_fx_rate(self, base: str, quote: str) -> MarketQuote:
        return self._fetch(frankfurter.PROVIDER_NAME, frankfurter.fetch_once, base, quote)

    def fetch_crypto_primary(self, base: str, quote: str) -> MarketQuote:
        return self._fetch(coinbase.PROVIDER_NAME, coinbase.fetch_once, base, quote)

    def fetch_crypto_secondary(self, base: str, quote: str) -> MarketQuote:
        return self._fetch(kraken.PROVIDER_NAME, kraken.fetch_once, base, quote)

    def _fetch(self, name: str, fetch_once: FetchOnce, base: str, quote: str) -> MarketQuote:
        context = {"source": name, "base": base, "quote": quote}
        self.logger.debug("Fetching quote from provider", context=context)
        try:
            quote_result = execute_with_retry(
                name,
                self.retry_policy,
                lambda: fetch_once(self.session, base, quote, self.timeout),
                self.sleep_fn,
            )
        except ProviderError as e:
            self.logger.warning(
                "Provider fetch failed",
                context={**context, "result": "failed", "retryable": e.retryable},
                exception=e,
            )
            raise

        self.logger.info(
            "Provider fetch succeeded",
            context={**context, "result": "success", "unit_price": str(quote_result.unit_price)},
        )
        return quote_result
