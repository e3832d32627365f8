"""API routes for single quotes and expression evaluation."""

from collections.abc import Callable
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from quote_engine.api.dependencies import get_clock, get_providers, get_runtime_config
from quote_engine.api.error_handlers import error_response
from quote_engine.models.api_schemas import (
    ExpressionResponse,
    MarketOutputResponse,
    ResultRowResponse,
    SuccessEnvelope,
)
from quote_engine.models.market import MarketKind, MarketRequest, ValidationError
from quote_engine.services.expression_evaluator import evaluate_query
from quote_engine.services.market_service import resolve_market
from quote_engine.services.providers.base import ProviderApi
from quote_engine.utils.config import RuntimeConfig
from quote_engine.utils.errors import AppError, UserError
from quote_engine.utils.trace_context import resolution_trace

router = APIRouter()


def _market_quote(
    command: str,
    kind: MarketKind,
    base: str,
    quote: str,
    amount: str,
    runtime_config: RuntimeConfig,
    providers: ProviderApi,
    now_fn: Callable[[], datetime],
) -> JSONResponse:
    with resolution_trace():
        try:
            try:
                request = MarketRequest.create(kind, base, quote, amount)
            except ValidationError as e:
                raise UserError.from_validation(e) from e
            output = resolve_market(runtime_config, providers, now_fn, request)
        except AppError as e:
            return error_response(command, e)

    envelope = SuccessEnvelope(
        command=command, result=MarketOutputResponse.model_validate(output.to_dict())
    )
    return JSONResponse(content=envelope.model_dump())


# Handlers are sync so provider calls and retry sleeps run in the threadpool
@router.get("/market/fx")
def get_fx_quote(
    base: str = Query(..., description="3-letter base currency, e.g. USD"),
    quote: str = Query(..., description="3-letter quote currency, e.g. TWD"),
    amount: str = Query("1", description="Positive amount of base to convert"),
    runtime_config: RuntimeConfig = Depends(get_runtime_config),
    providers: ProviderApi = Depends(get_providers),
    now_fn: Callable[[], datetime] = Depends(get_clock),
):
    """Convert an amount between two fiat currencies."""
    return _market_quote(
        "market.fx", MarketKind.FX, base, quote, amount, runtime_config, providers, now_fn
    )


@router.get("/market/crypto")
def get_crypto_quote(
    base: str = Query(..., description="Crypto ticker, e.g. BTC"),
    quote: str = Query(..., description="Quote symbol, e.g. USD"),
    amount: str = Query("1", description="Positive amount of base to price"),
    runtime_config: RuntimeConfig = Depends(get_runtime_config),
    providers: ProviderApi = Depends(get_providers),
    now_fn: Callable[[], datetime] = Depends(get_clock),
):
    """Price an amount of a crypto asset (Coinbase, falling back to Kraken)."""
    return _market_quote(
        "market.crypto", MarketKind.CRYPTO, base, quote, amount, runtime_config, providers, now_fn
    )


@router.get("/market/expr")
def get_expression(
    query: str = Query(..., description="Expression such as `1 btc + 3 eth to jpy`"),
    default_fiat: str | None = Query(None, description="Target fiat when there is no `to` clause"),
    runtime_config: RuntimeConfig = Depends(get_runtime_config),
    providers: ProviderApi = Depends(get_providers),
    now_fn: Callable[[], datetime] = Depends(get_clock),
):
    """
    Evaluate a numeric or asset expression.

    Returns one row per distinct asset plus a Total row, or a single row for
    plain arithmetic.
    """
    command = "market.expr"
    try:
        rows = evaluate_query(
            runtime_config,
            providers,
            now_fn,
            query,
            default_fiat or runtime_config.default_fiat,
        )
    except AppError as e:
        return error_response(command, e)

    envelope = SuccessEnvelope(
        command=command,
        result=ExpressionResponse(items=[ResultRowResponse(**row.to_dict()) for row in rows]),
    )
    return JSONResponse(content=envelope.model_dump())
