"""Models for parsed pricing expressions and the rows they evaluate to."""

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from quote_engine.models.market import CacheStatus


class ExpressionMode(str, enum.Enum):
    """Whether an expression is plain arithmetic or prices assets."""

    NUMERIC = "numeric"
    ASSET = "asset"


@dataclass(frozen=True)
class NumericTerm:
    """A bare number such as `8` or `-2.5`."""

    value: Decimal


@dataclass(frozen=True)
class AssetTerm:
    """An amount of an asset such as `3 ETH`."""

    amount: Decimal
    symbol: str


ParsedTerm = Union[NumericTerm, AssetTerm]


@dataclass(frozen=True)
class ParsedExpression:
    """
    Terms joined by operators, plus the fiat currency to price into.

    `len(terms) == len(operators) + 1` always holds, and every term has the
    same type as `mode` says.
    """

    terms: tuple[ParsedTerm, ...]
    operators: tuple[str, ...]
    target_fiat: str
    mode: ExpressionMode


@dataclass(frozen=True)
class ResolvedAssetQuote:
    """Unit price of one distinct symbol in an expression."""

    unit_price: Decimal
    provider: str
    cache_status: CacheStatus


@dataclass
class ResultRow:
    """One output row: title, secondary line (or formula), copyable value."""

    title: str
    subtitle: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "subtitle": self.subtitle, "value": self.value}
