"""Kraken: secondary crypto spot price source."""

import json
from datetime import UTC, datetime
from decimal import Decimal

import requests

from quote_engine.models.market import MarketQuote
from quote_engine.services.providers.base import (
    HttpStatusError,
    InvalidResponseError,
    TransportError,
    UnsupportedPairError,
    http_status_error,
    to_decimal,
)

PROVIDER_NAME = "kraken"
ENDPOINT = "https://api.kraken.com/0/public/Ticker"

ERROR_MESSAGE_PATHS = (("message",), ("error",))

# Kraken lists bitcoin as XBT
SYMBOL_ALIASES = {"BTC": "XBT"}


def fetch_once(session: requests.Session, base: str, quote: str, timeout: float) -> MarketQuote:
    """Perform a single ticker request without retrying."""
    pair = normalize_pair(base, quote)
    try:
        response = session.get(ENDPOINT, params={"pair": pair}, timeout=timeout)
        body = response.text
    except requests.RequestException as e:
        raise TransportError(str(e)) from e

    unit_price = parse_ticker_body(response.status_code, body)
    return MarketQuote(provider=PROVIDER_NAME, unit_price=unit_price, fetched_at=datetime.now(UTC))


def normalize_pair(base: str, quote: str) -> str:
    """
    Map a base/quote pair to Kraken's pair name (BTC/USD -> XBTUSD).

    Raises:
        UnsupportedPairError: If either symbol is not 2-10 ASCII alphanumerics
    """
    if not _is_valid_symbol(base) or not _is_valid_symbol(quote):
        raise UnsupportedPairError(f"{base}/{quote}")
    return f"{SYMBOL_ALIASES.get(base, base)}{SYMBOL_ALIASES.get(quote, quote)}"


def parse_ticker_body(status: int, body: str) -> Decimal:
    """
    Read the last-trade close price from a Kraken ticker response.

    Kraken reports most failures with HTTP 200 and a non-empty `error` list;
    an unknown pair becomes UnsupportedPairError, anything else an HTTP 400.
    """
    if not 200 <= status <= 299:
        raise http_status_error(status, body, ERROR_MESSAGE_PATHS)

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise InvalidResponseError(str(e)) from e
    if not isinstance(payload, dict):
        raise InvalidResponseError("kraken payload is not an object")

    errors = payload.get("error") or []
    if errors:
        first_error = str(errors[0])
        if "unknown asset pair" in first_error.lower():
            raise UnsupportedPairError(first_error)
        raise HttpStatusError(400, first_error)

    result = payload.get("result") or {}
    if not isinstance(result, dict) or not result:
        raise InvalidResponseError("missing kraken result")

    first_entry = next(iter(result.values()))
    close = first_entry.get("c") if isinstance(first_entry, dict) else None
    if not close:
        raise InvalidResponseError("missing kraken close price")

    price = to_decimal(close[0])
    if price is None:
        raise InvalidResponseError("invalid kraken close price")
    return price


def _is_valid_symbol(value: str) -> bool:
    return 2 <= len(value) <= 10 and value.isascii() and value.isalnum()
