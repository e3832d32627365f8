"""Market quote models: requests, provider answers, and resolved outputs."""

import enum
import re
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation, localcontext
from typing import Any

CONVERTED_PLACES = 8

_AMOUNT_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


class MarketKind(str, enum.Enum):
    """Which family of rate sources a request is priced against."""

    FX = "fx"
    CRYPTO = "crypto"


class CacheStatus(str, enum.Enum):
    """Provenance of a resolved quote."""

    LIVE = "live"
    CACHE_FRESH = "cache_fresh"
    CACHE_STALE_FALLBACK = "cache_stale_fallback"


class ValidationError(ValueError):
    """A symbol or amount failed validation."""


@dataclass(frozen=True)
class MarketRequest:
    """A single base/quote pricing request for a positive amount."""

    kind: MarketKind
    base: str
    quote: str
    amount: Decimal

    @classmethod
    def create(cls, kind: MarketKind, base: str, quote: str, amount: str) -> "MarketRequest":
        """
        Validate raw user input and build a request.

        Args:
            kind: FX or crypto
            base: Base symbol, any case, surrounding whitespace allowed
            quote: Quote symbol, same rules as base
            amount: Decimal amount as text; must be positive

        Raises:
            ValidationError: If a symbol or the amount is invalid
        """
        normalize = normalize_fx_symbol if kind is MarketKind.FX else normalize_crypto_symbol
        return cls(
            kind=kind,
            base=normalize(base, "base"),
            quote=normalize(quote, "quote"),
            amount=parse_amount(amount),
        )


@dataclass(frozen=True)
class MarketQuote:
    """One provider's unit price for base priced in quote."""

    provider: str
    unit_price: Decimal
    fetched_at: datetime


@dataclass(frozen=True)
class CacheMetadata:
    """Freshness details attached to every output."""

    status: CacheStatus
    key: str
    ttl_secs: int
    age_secs: int


@dataclass(frozen=True)
class MarketOutput:
    """Fully resolved quote as returned to callers."""

    kind: MarketKind
    base: str
    quote: str
    amount: str
    unit_price: str
    converted: str
    provider: str
    fetched_at: str
    cache: CacheMetadata

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary with enum values as strings."""
        result = asdict(self)
        result["kind"] = self.kind.value
        result["cache"]["status"] = self.cache.status.value
        return result


def build_output(request: MarketRequest, quote: MarketQuote, cache: CacheMetadata) -> MarketOutput:
    """
    Combine a request and a quote into the caller-facing output.

    `converted` is `amount * unit_price` rounded to 8 fractional digits.
    """
    converted = round_to_places(request.amount * quote.unit_price, CONVERTED_PLACES, ROUND_HALF_EVEN)
    return MarketOutput(
        kind=request.kind,
        base=request.base,
        quote=request.quote,
        amount=decimal_to_string(request.amount),
        unit_price=decimal_to_string(quote.unit_price),
        converted=decimal_to_string(converted),
        provider=quote.provider,
        fetched_at=format_timestamp(quote.fetched_at),
        cache=cache,
    )


def round_to_places(value: Decimal, places: int, rounding: str) -> Decimal:
    """
    Round to a fixed number of fractional digits.

    The working precision grows with the integer part, so large totals are
    never rejected by the default 28-digit context.
    """
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + places + 2)
        return value.quantize(Decimal(1).scaleb(-places), rounding=rounding)


def decimal_to_string(value: Decimal) -> str:
    """Render a decimal without trailing zeros or exponent notation."""
    if value.is_zero():
        return "0"
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits))
        return format(value.normalize(), "f")


def format_timestamp(value: datetime) -> str:
    """RFC3339 with whole seconds and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def normalize_fx_symbol(raw: str, field: str) -> str:
    """Uppercase a 3-letter ISO currency code or raise ValidationError."""
    value = raw.strip().upper()
    if len(value) != 3 or not (value.isascii() and value.isalpha()):
        raise ValidationError(
            f"invalid {field} symbol: {raw} (expected 3-letter ISO currency code)"
        )
    return value


def normalize_crypto_symbol(raw: str, field: str) -> str:
    """Uppercase a 2-10 character alphanumeric ticker or raise ValidationError."""
    value = raw.strip().upper()
    if not 2 <= len(value) <= 10 or not (value.isascii() and value.isalnum()):
        raise ValidationError(
            f"invalid {field} symbol: {raw} (expected 2-10 uppercase alphanumeric symbol)"
        )
    return value


def parse_amount(raw: str) -> Decimal:
    """
    Parse a positive decimal amount.

    Exponent notation, NaN and infinities are rejected as invalid amounts.
    """
    value = raw.strip()
    if not _AMOUNT_PATTERN.match(value):
        raise ValidationError(f"invalid amount: {raw}")
    try:
        parsed = Decimal(value)
    except InvalidOperation as e:
        raise ValidationError(f"invalid amount: {raw}") from e
    if parsed <= 0:
        raise ValidationError(f"amount must be positive: {raw}")
    return parsed.normalize()
