"""Frankfurter: fiat exchange rates from the ECB reference feed."""

import json
from datetime import UTC, datetime
from decimal import Decimal

import requests

from quote_engine.models.market import MarketQuote
from quote_engine.services.providers.base import (
    InvalidResponseError,
    TransportError,
    http_status_error,
    to_decimal,
)

PROVIDER_NAME = "frankfurter"
ENDPOINT = "https://api.frankfurter.dev/v1/latest"

ERROR_MESSAGE_PATHS = (("message",), ("error",), ("error", "message"))


def fetch_once(session: requests.Session, base: str, quote: str, timeout: float) -> MarketQuote:
    """Perform a single rate request without retrying."""
    try:
        response = session.get(
            ENDPOINT, params={"base": base, "symbols": quote}, timeout=timeout
        )
        body = response.text
    except requests.RequestException as e:
        raise TransportError(str(e)) from e

    unit_price = parse_fx_body(response.status_code, body, quote)
    return MarketQuote(provider=PROVIDER_NAME, unit_price=unit_price, fetched_at=datetime.now(UTC))


def parse_fx_body(status: int, body: str, quote: str) -> Decimal:
    """
    Extract the quote currency's rate from a Frankfurter response.

    Args:
        status: HTTP status code
        body: Response body text
        quote: Currency whose rate to read from `rates`

    Returns:
        The rate as an exact decimal

    Raises:
        HttpStatusError: For non-2xx responses
        InvalidResponseError: For undecodable bodies or a missing/invalid rate
    """
    if not 200 <= status <= 299:
        raise http_status_error(status, body, ERROR_MESSAGE_PATHS)

    try:
        payload = json.loads(body, parse_float=Decimal)
    except ValueError as e:
        raise InvalidResponseError(str(e)) from e

    rates = payload.get("rates") if isinstance(payload, dict) else None
    if not isinstance(rates, dict) or quote not in rates:
        raise InvalidResponseError(f"missing rate for {quote}")

    raw = rates[quote]
    rate = to_decimal(raw)
    if rate is None:
        raise InvalidResponseError(f"invalid numeric rate for {quote}: {raw}")
    return rate
