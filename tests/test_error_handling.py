"""Tests for engine errors and their API envelopes."""

import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from quote_engine.api.error_handlers import (
    QuoteErrorCode,
    create_error_envelope,
    error_response,
    redact_sensitive,
)
from quote_engine.models.market import ValidationError
from quote_engine.utils.errors import ErrorKind, MarketRuntimeError, UserError


class TestAppErrors:
    """Error kinds, exit codes and traces."""

    def test_user_error_exit_code(self):
        error = UserError("bad input")

        assert error.kind is ErrorKind.USER
        assert error.exit_code == 2
        assert str(error) == "bad input"

    def test_runtime_error_exit_code(self):
        error = MarketRuntimeError("providers down")

        assert error.kind is ErrorKind.RUNTIME
        assert error.exit_code == 1

    def test_with_trace_joins_entries(self):
        error = MarketRuntimeError.with_trace(
            "failed to fetch crypto spot price",
            ["coinbase: transport error: reset", "kraken: http error (503): busy"],
        )

        assert error.message == (
            "failed to fetch crypto spot price (provider trace: "
            "coinbase: transport error: reset; kraken: http error (503): busy)"
        )

    def test_with_empty_trace_is_prefix_only(self):
        assert MarketRuntimeError.with_trace("failed to fetch fx rate", []).message == "failed to fetch fx rate"

    def test_from_validation_keeps_message(self):
        error = UserError.from_validation(ValidationError("invalid amount: x"))

        assert error == UserError("invalid amount: x")

    def test_equality_depends_on_kind(self):
        assert UserError("same") != MarketRuntimeError("same")


class TestErrorEnvelope:
    """Mapping errors into API responses."""

    def test_user_error_envelope(self):
        envelope = create_error_envelope("market.expr", UserError("query must not be empty")).to_dict()

        assert envelope == {
            "schema_version": "v1",
            "command": "market.expr",
            "ok": False,
            "error": {
                "code": QuoteErrorCode.INVALID_INPUT,
                "message": "query must not be empty",
                "details": {"kind": "user", "exit_code": 2},
            },
        }

    def test_runtime_error_response_status(self):
        response = error_response("market.fx", MarketRuntimeError("failed to fetch fx rate"))

        assert response.status_code == 502
        body = json.loads(response.body)
        assert body["error"]["code"] == QuoteErrorCode.PROVIDER_FAILED

    def test_user_error_response_status(self):
        assert error_response("market.fx", UserError("bad")).status_code == 400


class TestRedaction:
    """Credentials never leave the process."""

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("token=abc123", "token=[REDACTED]"),
            ("secret: hunter2", "secret: [REDACTED]"),
            ("client_secret=xyz&mode=1", "client_secret=[REDACTED]&mode=1"),
            ("Authorization: Bearer abc.def", "Authorization: Bearer [REDACTED]"),
            ("sent bearer abc.def upstream", "sent bearer [REDACTED] upstream"),
            ("http error (503): busy", "http error (503): busy"),
        ],
    )
    def test_redacts_known_patterns(self, message, expected):
        assert redact_sensitive(message) == expected

    @given(secret=st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=4, max_size=32))
    def test_secret_values_never_survive(self, secret):
        redacted = redact_sensitive(f"coinbase: rejected token={secret} for request")

        assert redacted == "coinbase: rejected token=[REDACTED] for request"

    def test_already_redacted_bearer_is_left_alone(self):
        message = "Authorization: Bearer [REDACTED]"

        assert redact_sensitive(message) == message

    @given(message=st.text())
    def test_redaction_is_idempotent(self, message):
        once = redact_sensitive(message)

        assert redact_sensitive(once) == once
