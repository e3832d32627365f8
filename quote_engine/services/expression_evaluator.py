"""Evaluate parsed expressions into result rows."""

from collections.abc import Callable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from quote_engine.models.expression import (
    AssetTerm,
    ExpressionMode,
    NumericTerm,
    ParsedExpression,
    ResolvedAssetQuote,
    ResultRow,
)
from quote_engine.models.market import (
    CacheStatus,
    MarketKind,
    MarketOutput,
    MarketRequest,
    ValidationError,
    decimal_to_string,
    round_to_places,
)
from quote_engine.services.expression_parser import parse_expression
from quote_engine.services.market_service import resolve_market
from quote_engine.services.providers.base import ProviderApi
from quote_engine.utils.config import RuntimeConfig
from quote_engine.utils.errors import MarketRuntimeError, UserError
from quote_engine.utils.logger import StructuredLogger
from quote_engine.utils.trace_context import resolution_trace

logger = StructuredLogger("ExpressionEvaluator")

Clock = Callable[[], datetime]


def evaluate_query(
    runtime_config: RuntimeConfig,
    providers: ProviderApi,
    now_fn: Clock,
    query: str,
    default_fiat: str,
) -> list[ResultRow]:
    """
    Parse and evaluate a pricing expression.

    Numeric expressions produce a single row. Asset expressions produce one
    unit-price row per distinct symbol followed by a Total row.

    Args:
        runtime_config: Cache and provider settings
        providers: Rate sources
        now_fn: Clock used for cache freshness
        query: Raw expression text
        default_fiat: Target currency when the query has no `to` clause

    Returns:
        Ordered result rows

    Raises:
        UserError: Invalid expression (no provider is contacted)
        MarketRuntimeError: A symbol could not be priced
    """
    with resolution_trace() as trace_id:
        parsed = parse_expression(query, default_fiat)
        logger.debug(
            "Parsed expression",
            context={
                "trace_id": trace_id,
                "mode": parsed.mode.value,
                "terms": len(parsed.terms),
                "target_fiat": parsed.target_fiat,
            },
        )
        if parsed.mode is ExpressionMode.NUMERIC:
            return evaluate_numeric(parsed)
        return evaluate_assets(runtime_config, providers, now_fn, parsed)


def evaluate_numeric(parsed: ParsedExpression) -> list[ResultRow]:
    """Fold numeric terms strictly left to right (no operator precedence)."""
    values = [_numeric_value(term) for term in parsed.terms]
    total = values[0]
    for operator, value in zip(parsed.operators, values[1:]):
        if operator == "+":
            total += value
        elif operator == "-":
            total -= value
        elif operator == "*":
            total *= value
        elif operator == "/":
            if value.is_zero():
                raise UserError("division by zero is not allowed")
            total /= value
        else:
            raise UserError(f"unsupported operator: {operator}")

    rendered = format_plain_decimal(total)
    return [ResultRow(title=rendered, subtitle="Numeric result", value=rendered)]


def evaluate_assets(
    runtime_config: RuntimeConfig,
    providers: ProviderApi,
    now_fn: Clock,
    parsed: ParsedExpression,
) -> list[ResultRow]:
    """Price every distinct symbol once, then total the original terms."""
    terms = [_asset_term(term) for term in parsed.terms]
    target = parsed.target_fiat

    # dict preserves first-occurrence order
    symbols = list(dict.fromkeys(term.symbol for term in terms))
    quotes = {
        symbol: resolve_asset_quote(runtime_config, providers, now_fn, symbol, target)
        for symbol in symbols
    }

    rows = []
    for symbol in symbols:
        quote = quotes[symbol]
        price = format_market_decimal(quote.unit_price)
        rows.append(
            ResultRow(
                title=f"1 {symbol} = {price} {target}",
                subtitle=f"provider: {quote.provider} · freshness: {quote.cache_status.value}",
                value=f"{price} {target}",
            )
        )

    total, formula = evaluate_asset_total(terms, parsed.operators, quotes)
    rendered_total = format_market_decimal(total)
    rows.append(
        ResultRow(
            title=f"Total = {rendered_total} {target}",
            subtitle=f"{formula} = {rendered_total} {target}",
            value=f"{rendered_total} {target}",
        )
    )
    return rows


def evaluate_asset_total(
    terms: list[AssetTerm],
    operators: tuple[str, ...],
    quotes: dict[str, ResolvedAssetQuote],
) -> tuple[Decimal, str]:
    """
    Fold asset terms with + and - against their unit prices.

    Returns:
        (total, "Formula: a*p(SYM) + b*q(SYM) ...")
    """
    first = terms[0]
    total = first.amount * quotes[first.symbol].unit_price
    pieces = [_formula_piece(first, quotes[first.symbol])]

    for operator, term in zip(operators, terms[1:]):
        quote = quotes[term.symbol]
        value = term.amount * quote.unit_price
        if operator == "+":
            total += value
        elif operator == "-":
            total -= value
        else:
            raise UserError(
                "unsupported operator in asset expression: only + and - are supported"
            )
        pieces.append(operator)
        pieces.append(_formula_piece(term, quote))

    return total, f"Formula: {' '.join(pieces)}"


def resolve_asset_quote(
    runtime_config: RuntimeConfig,
    providers: ProviderApi,
    now_fn: Clock,
    symbol: str,
    target_fiat: str,
) -> ResolvedAssetQuote:
    """
    Price one unit of symbol in target_fiat.

    Three-letter alphabetic symbols may be currencies or tickers, so they are
    tried as FX first and fall through to crypto on any FX failure.
    """
    trace: list[str] = []

    if looks_like_fiat_symbol(symbol):
        fx_request = _unit_request(MarketKind.FX, symbol, target_fiat)
        try:
            return _to_resolved(symbol, resolve_market(runtime_config, providers, now_fn, fx_request))
        except MarketRuntimeError as e:
            trace.append(f"fx: {e.message}")

    crypto_request = _unit_request(MarketKind.CRYPTO, symbol, target_fiat)
    try:
        return _to_resolved(symbol, resolve_market(runtime_config, providers, now_fn, crypto_request))
    except MarketRuntimeError as e:
        trace.append(f"crypto: {e.message}")
        raise MarketRuntimeError.with_trace(
            f"failed to resolve quote for {symbol}/{target_fiat}", trace
        ) from e


def looks_like_fiat_symbol(symbol: str) -> bool:
    return len(symbol) == 3 and symbol.isascii() and symbol.isalpha()


def format_plain_decimal(value: Decimal) -> str:
    """Render a decimal as plain digits with no trailing zeros."""
    return decimal_to_string(value)


def format_market_decimal(value: Decimal) -> str:
    """
    Round a market value for display.

    Two decimals below 100, one below 1000, none from 1000 up; halves round
    away from zero.
    """
    magnitude = abs(value)
    if magnitude < 100:
        places = 2
    elif magnitude < 1000:
        places = 1
    else:
        places = 0
    rounded = round_to_places(value, places, ROUND_HALF_UP)
    return format(rounded, f".{places}f")


def _unit_request(kind: MarketKind, symbol: str, target_fiat: str) -> MarketRequest:
    try:
        return MarketRequest.create(kind, symbol, target_fiat, "1")
    except ValidationError as e:
        raise UserError.from_validation(e) from e


def _to_resolved(symbol: str, output: MarketOutput) -> ResolvedAssetQuote:
    try:
        unit_price = Decimal(output.unit_price)
    except ArithmeticError as e:
        raise MarketRuntimeError(
            f"provider returned invalid unit price for {symbol}: {output.unit_price}"
        ) from e
    return ResolvedAssetQuote(
        unit_price=unit_price,
        provider=output.provider,
        cache_status=CacheStatus(output.cache.status),
    )


def _formula_piece(term: AssetTerm, quote: ResolvedAssetQuote) -> str:
    return (
        f"{format_plain_decimal(term.amount)}*{format_market_decimal(quote.unit_price)}"
        f"({term.symbol})"
    )


def _numeric_value(term: NumericTerm | AssetTerm) -> Decimal:
    if not isinstance(term, NumericTerm):
        raise UserError("mixed numeric and asset terms are not supported")
    return term.value


def _asset_term(term: NumericTerm | AssetTerm) -> AssetTerm:
    if not isinstance(term, AssetTerm):
        raise UserError("mixed numeric and asset terms are not supported")
    return term
