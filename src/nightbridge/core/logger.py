"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module so every event is logged as
a short snake_case name followed by structured fields, either as
human-readable ``key=value`` pairs (default) or as one JSON object per
line for log aggregators.

The [StructuredFormatter][nightbridge.core.logger.StructuredFormatter] is
a stdlib ``logging.Formatter`` that appends the ``structured_kv`` extra
attached by [Logger][nightbridge.core.logger.Logger]. Installed on the
root handler by the CLI, it also formats plain ``logging.getLogger()``
calls from the models and clients layers the same way.

Examples:
    ```python
    from nightbridge.core.logger import Logger

    logger = Logger("treatments")
    logger.info("cycle_completed", treatments=3, deferred=1)
    # Output: info treatments cycle_completed treatments=3 deferred=1
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar


def _truncate(value: Any, max_value_length: int | None) -> str:
    s = str(value)
    if max_value_length and len(s) > max_value_length:
        return s[:max_value_length] + f"...<truncated {len(s) - max_value_length} chars>"
    return s


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values longer than ``max_value_length`` are truncated. Values that are
    empty or contain whitespace, ``=`` or quotes are escaped and wrapped in
    double quotes so the output stays machine-splittable.

    Returns:
        The formatted pairs with ``prefix`` prepended, or an empty string
        when ``kwargs`` is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for key, value in kwargs.items():
        s = _truncate(value, max_value_length)
        if not s or any(c in s for c in " =\"'"):
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{key}="{escaped}"')
        else:
            parts.append(f"{key}={s}")
    return prefix + " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Render records as ``level logger message key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            line += format_kv_pairs(extra)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class Logger:
    """Structured logger appending keyword arguments as fields.

    All public methods mirror the standard logging API with an added
    ``**kwargs`` parameter for the structured fields.
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
    ) -> None:
        """Initialize a structured logger.

        Args:
            name: Logger name, typically the service name
                (maps to ``logging.getLogger(name)``).
            json_output: Emit JSON objects instead of key=value pairs.
            max_value_length: Per-value truncation length (default 1000).
        """
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = (
            self._DEFAULT_MAX_VALUE_LENGTH if max_value_length is None else max_value_length
        )

    @property
    def name(self) -> str:
        return self._logger.name

    def _emit(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return

        if self._json_output:
            payload = {
                "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
                "level": logging.getLevelName(level).lower(),
                "service": self._logger.name,
                "message": msg,
                **kwargs,
            }
            self._logger.log(level, json.dumps(payload, default=str), exc_info=exc_info)
            return

        extra = (
            {
                "structured_kv": {
                    k: _truncate(v, self._max_value_length) for k, v in kwargs.items()
                }
            }
            if kwargs
            else {}
        )
        self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.ERROR, msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.CRITICAL, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR level including the active exception's traceback."""
        self._emit(logging.ERROR, msg, kwargs, exc_info=True)
