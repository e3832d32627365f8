"""Quote resolution: cache lookup, provider fallback chain, cache write-back."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from quote_engine.models.market import (
    CacheMetadata,
    CacheStatus,
    MarketKind,
    MarketOutput,
    MarketQuote,
    MarketRequest,
    build_output,
    decimal_to_string,
    format_timestamp,
)
from quote_engine.services.cache_store import (
    CacheRecord,
    cache_key,
    cache_path,
    evaluate_freshness,
    read_cache,
    record_to_quote,
    ttl_for_kind,
    write_cache,
)
from quote_engine.services.providers.base import ProviderApi, ProviderError
from quote_engine.utils.config import RuntimeConfig
from quote_engine.utils.errors import MarketRuntimeError
from quote_engine.utils.logger import StructuredLogger
from quote_engine.utils.trace_context import resolution_trace

logger = StructuredLogger("MarketService")


@dataclass(frozen=True)
class _CachedState:
    quote: MarketQuote
    age_secs: int
    is_fresh: bool


@dataclass(frozen=True)
class _Resolution:
    """Everything fixed for one call: where the record lives and how long it lasts."""

    request: MarketRequest
    path: Path
    key: str
    ttl_secs: int
    now: datetime


def resolve_market(
    runtime_config: RuntimeConfig,
    providers: ProviderApi,
    now_fn: Callable[[], datetime],
    request: MarketRequest,
) -> MarketOutput:
    """
    Resolve one market request.

    A fresh cache record is returned without contacting any provider.
    Otherwise the providers for the request's kind are tried in order; a
    live answer is written back to the cache. When every provider fails,
    an existing cache record (however old) is returned as a stale
    fallback, and only if there is none does resolution fail.

    Args:
        runtime_config: Cache location
        providers: Rate sources
        now_fn: Clock, injected for deterministic freshness
        request: What to price

    Returns:
        MarketOutput annotated with its cache status

    Raises:
        MarketRuntimeError: Providers exhausted with no cache, or cache I/O failed
    """
    with resolution_trace():
        ctx = _Resolution(
            request=request,
            path=cache_path(runtime_config, request.kind, request.base, request.quote),
            key=cache_key(request.kind, request.base, request.quote),
            ttl_secs=ttl_for_kind(request.kind),
            now=now_fn(),
        )

        try:
            record = read_cache(ctx.path)
        except OSError as e:
            raise MarketRuntimeError(f"failed to read cache {ctx.path}: {e}") from e

        cached = _cached_state(record, ctx)
        if cached is not None and cached.is_fresh:
            logger.info(
                "Serving fresh cached quote",
                context={"cache_key": ctx.key, "age_secs": cached.age_secs, "status": "cache_fresh"},
            )
            return build_output(
                request,
                cached.quote,
                CacheMetadata(CacheStatus.CACHE_FRESH, ctx.key, ctx.ttl_secs, cached.age_secs),
            )

        logger.debug(
            "Cache miss, resolving live",
            context={"cache_key": ctx.key, "cached": cached is not None},
        )
        if request.kind is MarketKind.FX:
            chain = [("frankfurter", providers.fetch_fx_rate)]
            prefix = "failed to fetch fx rate"
        else:
            chain = [
                ("coinbase", providers.fetch_crypto_primary),
                ("kraken", providers.fetch_crypto_secondary),
            ]
            prefix = "failed to fetch crypto spot price"

        trace: list[str] = []
        for source, fetch in chain:
            try:
                quote = fetch(request.base, request.quote)
            except ProviderError as e:
                trace.append(f"{source}: {e}")
                continue
            return _store_live(quote, ctx)

        return _fallback_or_fail(prefix, trace, cached, ctx)


def _cached_state(record: CacheRecord | None, ctx: _Resolution) -> _CachedState | None:
    if record is None:
        return None
    quote = record_to_quote(record)
    if quote is None:
        logger.warning("Ignoring unusable cache record", context={"cache_key": ctx.key})
        return None
    freshness = evaluate_freshness(record, ctx.now, ctx.ttl_secs)
    return _CachedState(quote=quote, age_secs=freshness.age_secs, is_fresh=freshness.is_fresh)


def _store_live(quote: MarketQuote, ctx: _Resolution) -> MarketOutput:
    record = CacheRecord(
        base=ctx.request.base,
        quote=ctx.request.quote,
        provider=quote.provider,
        unit_price=decimal_to_string(quote.unit_price),
        fetched_at=format_timestamp(quote.fetched_at),
    )
    try:
        write_cache(ctx.path, record)
    except OSError as e:
        raise MarketRuntimeError(f"failed to write cache {ctx.path}: {e}") from e

    logger.info(
        "Resolved live quote",
        context={"cache_key": ctx.key, "provider": quote.provider, "status": "live"},
    )
    return build_output(
        ctx.request,
        MarketQuote(provider=quote.provider, unit_price=quote.unit_price, fetched_at=ctx.now),
        CacheMetadata(CacheStatus.LIVE, ctx.key, ctx.ttl_secs, 0),
    )


def _fallback_or_fail(
    prefix: str, trace: list[str], cached: _CachedState | None, ctx: _Resolution
) -> MarketOutput:
    if cached is not None:
        logger.warning(
            "All providers failed, serving stale cached quote",
            context={
                "cache_key": ctx.key,
                "age_secs": cached.age_secs,
                "status": "cache_stale_fallback",
                "provider_trace": trace,
            },
        )
        return build_output(
            ctx.request,
            cached.quote,
            CacheMetadata(CacheStatus.CACHE_STALE_FALLBACK, ctx.key, ctx.ttl_secs, cached.age_secs),
        )

    logger.error(
        "All providers failed and no cached quote exists",
        context={"cache_key": ctx.key, "provider_trace": trace},
    )
    raise MarketRuntimeError.with_trace(prefix, trace)
