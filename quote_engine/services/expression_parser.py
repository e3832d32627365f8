"""Parser for pricing expressions such as `1 btc + 3 eth to jpy` or `8/2*3`."""

from decimal import Decimal, InvalidOperation

from quote_engine.models.expression import (
    AssetTerm,
    ExpressionMode,
    NumericTerm,
    ParsedExpression,
    ParsedTerm,
)
from quote_engine.models.market import ValidationError, normalize_fx_symbol
from quote_engine.utils.errors import UserError

OPERATORS = frozenset("+-*/")
ASSET_OPERATORS = frozenset("+-")
FRAGMENT_LENGTH = 16


def parse_expression(query: str, default_target: str) -> ParsedExpression:
    """
    Parse a query into terms, operators, target fiat, and mode.

    Args:
        query: Raw user text, optionally ending in `to <FIAT>`
        default_target: Fiat used when there is no `to` clause

    Returns:
        ParsedExpression whose terms are all numeric or all assets

    Raises:
        UserError: For any syntax or validation problem
    """
    trimmed = query.strip()
    if not trimmed:
        raise UserError("query must not be empty")

    source, target_fiat = split_target_clause(trimmed, default_target)
    terms, operators = ExpressionParser(source).parse()

    has_numeric = any(isinstance(term, NumericTerm) for term in terms)
    has_asset = any(isinstance(term, AssetTerm) for term in terms)
    if has_numeric and has_asset:
        raise UserError("mixed numeric and asset terms are not supported")
    mode = ExpressionMode.ASSET if has_asset else ExpressionMode.NUMERIC

    if mode is ExpressionMode.ASSET and any(op not in ASSET_OPERATORS for op in operators):
        raise UserError("unsupported operator in asset expression: only + and - are supported")

    return ParsedExpression(
        terms=tuple(terms),
        operators=tuple(operators),
        target_fiat=target_fiat,
        mode=mode,
    )


def split_target_clause(trimmed_query: str, default_target: str) -> tuple[str, str]:
    """
    Separate a trailing `to <FIAT>` clause from the expression.

    Returns:
        (expression text, normalized target fiat)
    """
    tokens = trimmed_query.split()
    if not tokens:
        raise UserError("query must not be empty")

    if tokens[-1].lower() == "to":
        raise UserError("incomplete to clause: expected a 3-letter fiat code")

    try:
        if len(tokens) >= 2 and tokens[-2].lower() == "to":
            expression_tokens = tokens[:-2]
            if not expression_tokens:
                raise UserError("expression must not be empty before to clause")
            return " ".join(expression_tokens), normalize_fx_symbol(tokens[-1], "target")

        return trimmed_query, normalize_fx_symbol(default_target, "default_fiat")
    except ValidationError as e:
        raise UserError.from_validation(e) from e


class ExpressionParser:
    """
    Recursive-descent parser over an owned string with an explicit cursor.

    Grammar:
        expr := term (op term)*
        op   := '+' | '-' | '*' | '/'
        term := decimal [ws+ symbol | letters]
    """

    def __init__(self, text: str):
        self.text = text
        self.cursor = 0

    def parse(self) -> tuple[list[ParsedTerm], list[str]]:
        self.skip_whitespace()
        if self.peek() is None:
            raise UserError("expression must not be empty")

        terms = [self.parse_term()]
        operators: list[str] = []

        while True:
            self.skip_whitespace()
            token = self.peek()
            if token is None:
                break
            if token not in OPERATORS:
                raise UserError(f"invalid token near `{self.remaining_fragment()}`")

            self.cursor += 1
            operators.append(token)
            self.skip_whitespace()
            if self.peek() is None:
                raise UserError("expression cannot end with an operator")
            terms.append(self.parse_term())

        return terms, operators

    def parse_term(self) -> ParsedTerm:
        amount = self.parse_decimal()
        spaces = self.skip_whitespace()
        token = self.peek()

        if spaces > 0 and token is not None and _is_ascii_alnum(token):
            return AssetTerm(amount=amount, symbol=self.parse_asset_symbol(allow_digits=True))

        # Compact suffixes ("1btc") must be letters only so "1e2" never reads as asset E2
        if spaces == 0 and token is not None and _is_ascii_alpha(token):
            return AssetTerm(amount=amount, symbol=self.parse_asset_symbol(allow_digits=False))

        return NumericTerm(value=amount)

    def parse_decimal(self) -> Decimal:
        start = self.cursor
        if self.peek() in ("+", "-"):
            self.cursor += 1

        integer_digits = self._consume_digits()
        saw_dot = False
        fractional_digits = 0
        if self.peek() == ".":
            saw_dot = True
            self.cursor += 1
            fractional_digits = self._consume_digits()

        if integer_digits == 0 and fractional_digits == 0:
            raise UserError(f"invalid number token near `{self.remaining_fragment()}`")
        if saw_dot and fractional_digits == 0:
            raise UserError("invalid number token: decimal point must be followed by digits")

        token = self.text[start:self.cursor]
        try:
            return Decimal(token)
        except InvalidOperation as e:
            raise UserError(f"invalid number token: {token}") from e

    def parse_asset_symbol(self, allow_digits: bool) -> str:
        start = self.cursor
        while True:
            token = self.peek()
            if token is None:
                break
            if not (_is_ascii_alpha(token) or (allow_digits and _is_ascii_digit(token))):
                break
            self.cursor += 1

        symbol = self.text[start:self.cursor]
        normalized = symbol.upper()
        if not 2 <= len(normalized) <= 10:
            raise UserError(f"invalid asset token: {symbol}")
        return normalized

    def skip_whitespace(self) -> int:
        """Advance past ASCII whitespace, returning how many characters were skipped."""
        start = self.cursor
        while self.peek() is not None and self.peek() in " \t\n\r\f\v":
            self.cursor += 1
        return self.cursor - start

    def remaining_fragment(self) -> str:
        return self.text[self.cursor:self.cursor + FRAGMENT_LENGTH]

    def peek(self) -> str | None:
        if self.cursor < len(self.text):
            return self.text[self.cursor]
        return None

    def _consume_digits(self) -> int:
        start = self.cursor
        while self.peek() is not None and _is_ascii_digit(self.peek()):
            self.cursor += 1
        return self.cursor - start


def _is_ascii_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def _is_ascii_alpha(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z")


def _is_ascii_alnum(ch: str) -> bool:
    return _is_ascii_alpha(ch) or _is_ascii_digit(ch)
