"""Coinbase: primary crypto spot price source."""

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

PROVIDER_NAME = "coinbase"
ENDPOINT_PREFIX = "https://api.coinbase.com/v2/prices"

ERROR_MESSAGE_PATHS = (
    ("message",),
    ("errors", 0, "message"),
    ("error", "message"),
    ("error",),
)


def fetch_once(session: requests.Session, base: str, quote: str, timeout: float) -> MarketQuote:
    """Perform a single spot request without retrying."""
    url = f"{ENDPOINT_PREFIX}/{base}-{quote}/spot"
    try:
        response = session.get(url, timeout=timeout)
        body = response.text
    except requests.RequestException as e:
        raise TransportError(str(e)) from e

    unit_price = parse_spot_body(response.status_code, body)
    return MarketQuote(provider=PROVIDER_NAME, unit_price=unit_price, fetched_at=datetime.now(UTC))


def parse_spot_body(status: int, body: str) -> Decimal:
    """Read `data.amount` from a Coinbase spot response."""
    if not 200 <= status <= 299:
        raise http_status_error(status, body, ERROR_MESSAGE_PATHS)

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise InvalidResponseError(str(e)) from e

    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict) or not isinstance(data.get("amount"), str):
        raise InvalidResponseError("missing coinbase amount")

    amount = to_decimal(data["amount"])
    if amount is None:
        raise InvalidResponseError("invalid coinbase amount")
    return amount
