"""File-backed quote cache: one JSON record per (kind, base, quote)."""

import json
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path

from quote_engine.models.market import MarketKind, MarketQuote
from quote_engine.utils.config import CRYPTO_TTL_SECS, FX_TTL_SECS, RuntimeConfig

CACHE_SUBDIR = "market-cli"


@dataclass(frozen=True)
class CacheRecord:
    """Persisted form of a live quote."""

    base: str
    quote: str
    provider: str
    unit_price: str
    fetched_at: str


@dataclass(frozen=True)
class Freshness:
    """How old a record is and whether it is still within its TTL."""

    age_secs: int
    is_fresh: bool


def cache_key(kind: MarketKind, base: str, quote: str) -> str:
    """Deterministic key such as `fx-usd-twd`."""
    return f"{kind.value}-{base.lower()}-{quote.lower()}"


def cache_path(runtime_config: RuntimeConfig, kind: MarketKind, base: str, quote: str) -> Path:
    """Location of the record for a key under the configured cache dir."""
    return Path(runtime_config.cache_dir) / CACHE_SUBDIR / f"{cache_key(kind, base, quote)}.json"


def ttl_for_kind(kind: MarketKind) -> int:
    return FX_TTL_SECS if kind is MarketKind.FX else CRYPTO_TTL_SECS


def read_cache(path: Path) -> CacheRecord | None:
    """
    Load a cache record.

    A missing file and a corrupt payload (undecodable bytes or malformed
    JSON) are both a cache miss. Other I/O errors (permissions, a directory
    in the way) propagate as OSError.
    """
    try:
        payload = Path(path).read_bytes()
    except FileNotFoundError:
        return None

    try:
        data = json.loads(payload.decode("utf-8"))
        return CacheRecord(
            base=str(data["base"]),
            quote=str(data["quote"]),
            provider=str(data["provider"]),
            unit_price=str(data["unit_price"]),
            fetched_at=str(data["fetched_at"]),
        )
    except (ValueError, KeyError, TypeError):
        return None


def write_cache(path: Path, record: CacheRecord) -> None:
    """
    Atomically replace the record at path.

    The payload is written to a sibling temp file and renamed over the
    target, so readers see either the old record or the new one.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.stem}.{os.getpid()}.tmp")
    try:
        tmp_path.write_text(json.dumps(asdict(record)), encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def parse_fetched_at(record: CacheRecord) -> datetime | None:
    """Parse the record's RFC3339 timestamp; None if it is not one."""
    try:
        parsed = datetime.fromisoformat(record.fetched_at)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


def evaluate_freshness(record: CacheRecord, now: datetime, ttl_secs: int) -> Freshness:
    """
    Compute a record's age against a TTL.

    An unparseable timestamp is treated as just past the TTL, so such a
    record is never fresh.
    """
    fetched_at = parse_fetched_at(record) or now - timedelta(seconds=ttl_secs + 1)
    age_secs = max(0, int((now - fetched_at).total_seconds()))
    return Freshness(age_secs=age_secs, is_fresh=age_secs <= ttl_secs)


def record_to_quote(record: CacheRecord) -> MarketQuote | None:
    """Rebuild a quote from a record; None if its price or timestamp is unusable."""
    fetched_at = parse_fetched_at(record)
    if fetched_at is None:
        return None
    try:
        unit_price = Decimal(record.unit_price)
    except InvalidOperation:
        return None
    if not unit_price.is_finite():
        return None
    return MarketQuote(provider=record.provider, unit_price=unit_price, fetched_at=fetched_at)
