"""JSON-lines logging for the quote engine's components."""

import json
import sys
import traceback
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TextIO

from quote_engine.utils.trace_context import get_current_trace

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

Context = dict[str, Any] | None


class StructuredLogger:
    """
    Emit one JSON object per line, tagged with a component name.

    Lines written while a resolution trace is active carry its `trace_id`
    in their context, so the cache lookups and provider attempts of a single
    quote can be grepped together.
    """

    def __init__(self, component: str, file_path: str | None = None, stream: TextIO | None = None):
        """
        Args:
            component: Source of the lines, e.g. `MarketService`
            file_path: Optional file that also receives every line
            stream: Where lines go; stdout when omitted
        """
        self.component = component
        self.file_path = file_path
        self.stream = stream
        if file_path:
            Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    def debug(self, message: str, context: Context = None) -> None:
        self._emit("DEBUG", message, context)

    def info(self, message: str, context: Context = None) -> None:
        self._emit("INFO", message, context)

    def warning(self, message: str, context: Context = None, exception: BaseException | None = None) -> None:
        """Log a degraded but recoverable event, e.g. a retried provider call."""
        self._emit("WARNING", message, context, exception)

    def error(self, message: str, context: Context = None, exception: BaseException | None = None) -> None:
        """Log a failure, with the exception's type, message and stack when given."""
        self._emit("ERROR", message, context, exception)

    def log(
        self,
        level: str,
        message: str,
        context: Context = None,
        exception: BaseException | None = None,
    ) -> None:
        """
        Log at a level chosen at runtime.

        Unknown levels are written as INFO, and exceptions are only attached
        at WARNING and above.
        """
        level = level.upper()
        if level not in LEVELS:
            level = "INFO"
        if level in ("DEBUG", "INFO"):
            exception = None
        self._emit(level, message, context, exception)

    def _emit(
        self,
        level: str,
        message: str,
        context: Context,
        exception: BaseException | None = None,
    ) -> None:
        line = self._render(level, message, context, exception)
        try:
            print(line, file=self.stream or sys.stdout)
            if self.file_path:
                with open(self.file_path, "a") as log_file:
                    log_file.write(line + "\n")
        except OSError as e:
            print(f"Failed to write log: {e}", file=sys.stderr)

    def _render(
        self,
        level: str,
        message: str,
        context: Context,
        exception: BaseException | None,
    ) -> str:
        record: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": level,
            "component": self.component,
            "message": message,
        }

        fields = dict(context or {})
        trace_id = get_current_trace()
        if trace_id and "trace_id" not in fields:
            fields["trace_id"] = trace_id
        if fields:
            record["context"] = fields

        if exception is not None:
            record["exception"] = {
                "type": type(exception).__name__,
                "message": str(exception),
                "stack_trace": "".join(
                    traceback.format_exception(type(exception), exception, exception.__traceback__)
                ),
            }

        # default=str keeps Decimal prices and Paths serializable
        return json.dumps(record, default=str)
