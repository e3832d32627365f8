"""Error types shared by the quote engine and its callers."""

import enum

from quote_engine.models.market import ValidationError


class ErrorKind(enum.Enum):
    """Classification of an engine failure."""

    USER = "user"
    RUNTIME = "runtime"


class AppError(Exception):
    """
    Base error carried out of the engine.

    User errors come from malformed input and are always detected before any
    provider is contacted. Runtime errors mean every provider failed and no
    cached answer was usable (or the cache itself could not be accessed).
    """

    kind = ErrorKind.RUNTIME

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def exit_code(self) -> int:
        """Process exit code for this error (2 for user errors, 1 otherwise)."""
        return 2 if self.kind is ErrorKind.USER else 1

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AppError):
            return NotImplemented
        return self.kind is other.kind and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.kind, self.message))


class UserError(AppError):
    """Input could not be parsed or validated."""

    kind = ErrorKind.USER

    @classmethod
    def from_validation(cls, error: ValidationError) -> "UserError":
        return cls(str(error))


class MarketRuntimeError(AppError):
    """Resolution failed after exhausting providers and cache."""

    kind = ErrorKind.RUNTIME

    @classmethod
    def with_trace(cls, prefix: str, trace: list[str]) -> "MarketRuntimeError":
        """
        Build an error whose message embeds the per-provider failure trace.

        Args:
            prefix: Summary of what failed
            trace: Ordered "<provider>: <error>" entries

        Returns:
            Error with message "<prefix> (provider trace: a; b)"
        """
        if not trace:
            return cls(prefix)
        return cls(f"{prefix} (provider trace: {'; '.join(trace)})")
