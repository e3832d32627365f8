"""Centralized error handling for the quote API."""

import re

from fastapi import status
from fastapi.responses import JSONResponse

from quote_engine.models.api_schemas import ErrorBody, ErrorDetails, ErrorEnvelope
from quote_engine.utils.errors import AppError, ErrorKind


class QuoteErrorCode:
    """Standard error codes returned in error envelopes."""

    INVALID_INPUT = "user.invalid_input"
    PROVIDER_FAILED = "runtime.provider_failed"


_SECRET_VALUE = r"[^\s&,;)\]}]+"
_KEY_VALUE_PATTERN = re.compile(
    rf"(client_secret|secret|token|authorization)([=:]\s*)(?!(?:bearer\s+)?\[REDACTED\])(bearer\s+)?({_SECRET_VALUE})",
    re.IGNORECASE,
)
_BEARER_PATTERN = re.compile(rf"(bearer )(?!\[REDACTED\])({_SECRET_VALUE})", re.IGNORECASE)


def redact_sensitive(message: str) -> str:
    """
    Mask credentials that upstream error bodies may echo back.

    Values following `token=`, `secret=`, `client_secret=`, `authorization=`
    (or the `:` forms) and any `Bearer <token>` are replaced by [REDACTED].
    """
    redacted = _KEY_VALUE_PATTERN.sub(
        lambda m: f"{m.group(1)}{m.group(2)}{m.group(3) or ''}[REDACTED]", message
    )
    return _BEARER_PATTERN.sub(lambda m: f"{m.group(1)}[REDACTED]", redacted)


def create_error_envelope(command: str, error: AppError) -> ErrorEnvelope:
    """
    Build the error envelope for an engine failure.

    Args:
        command: Command name such as `market.expr`
        error: The user or runtime error raised by the engine

    Returns:
        ErrorEnvelope with a redacted message
    """
    is_user = error.kind is ErrorKind.USER
    return ErrorEnvelope(
        command=command,
        error=ErrorBody(
            code=QuoteErrorCode.INVALID_INPUT if is_user else QuoteErrorCode.PROVIDER_FAILED,
            message=redact_sensitive(error.message),
            details=ErrorDetails(kind=error.kind.value, exit_code=error.exit_code),
        ),
    )


def error_response(command: str, error: AppError) -> JSONResponse:
    """User errors map to 400, runtime errors to 502 (an upstream failed)."""
    status_code = (
        status.HTTP_400_BAD_REQUEST if error.kind is ErrorKind.USER else status.HTTP_502_BAD_GATEWAY
    )
    return JSONResponse(
        status_code=status_code,
        content=create_error_envelope(command, error).to_dict(),
    )
