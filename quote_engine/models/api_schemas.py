"""Pydantic schemas for the quote API's JSON envelopes."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

SCHEMA_VERSION = "v1"


class CacheMetadataResponse(BaseModel):
    """Freshness block of a quote."""

    status: Literal["live", "cache_fresh", "cache_stale_fallback"]
    key: str
    ttl_secs: int
    age_secs: int


class MarketOutputResponse(BaseModel):
    """A single resolved FX or crypto quote."""

    model_config = ConfigDict(from_attributes=True)

    kind: Literal["fx", "crypto"]
    base: str
    quote: str
    amount: str
    unit_price: str
    converted: str
    provider: str
    fetched_at: str
    cache: CacheMetadataResponse


class ResultRowResponse(BaseModel):
    """One row of an evaluated expression."""

    title: str
    subtitle: str
    value: str


class ExpressionResponse(BaseModel):
    """All rows of an evaluated expression, in display order."""

    items: list[ResultRowResponse]


class SuccessEnvelope(BaseModel):
    """Wrapper for successful results."""

    schema_version: str = SCHEMA_VERSION
    command: str
    ok: Literal[True] = True
    result: MarketOutputResponse | ExpressionResponse


class ErrorDetails(BaseModel):
    kind: Literal["user", "runtime"]
    exit_code: int


class ErrorBody(BaseModel):
    code: str
    message: str
    details: ErrorDetails


class ErrorEnvelope(BaseModel):
    """Wrapper for failures."""

    schema_version: str = SCHEMA_VERSION
    command: str
    ok: Literal[False] = False
    error: ErrorBody

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()
