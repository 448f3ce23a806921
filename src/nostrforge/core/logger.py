"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module so that every record carries
its context as ``key=value`` pairs (default) or as a JSON object. Values
that look like secrets (``nsec1...`` keys, bunker ``secret=`` parameters)
are masked before they reach any handler.

The [StructuredFormatter][nostrforge.core.logger.StructuredFormatter] reads
the ``structured_kv`` extra field attached by
[Logger][nostrforge.core.logger.Logger]; installed on the root handler by
[configure_logging()][nostrforge.core.logger.configure_logging] it unifies
output from both ``Logger`` and the plain ``logging.getLogger()`` calls used
in the ``nips`` and ``utils`` layers.

Examples:
    ```python
    from nostrforge.core.logger import Logger

    logger = Logger("engine")
    logger.info("publish_completed", accepted=2, relays=3)
    # Output: publish_completed accepted=2 relays=3

    relay_logger = logger.bind(relay="wss://relay.example.com")
    relay_logger.warning("publish_rejected", reason="blocked")
    # Output: publish_rejected relay=wss://relay.example.com reason=blocked
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
import re
from typing import Any, ClassVar


_SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"nsec1[02-9ac-hj-np-z]+"),
    re.compile(r"(secret=)[^&\s]+"),
)


def mask_secrets(value: str) -> str:
    """Replace private keys and connection secrets with ``***``."""
    value = _SECRET_PATTERNS[0].sub("nsec1***", value)
    return _SECRET_PATTERNS[1].sub(r"\1***", value)


def _truncate(value: str, max_value_length: int | None) -> str:
    if max_value_length and len(value) > max_value_length:
        return value[:max_value_length] + f"...<truncated {len(value) - max_value_length} chars>"
    return value


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values are masked, truncated to ``max_value_length`` characters, and
    quoted when they contain whitespace, equals signs, or quotes.

    Returns:
        Formatted string, e.g. ``' relay=wss://a.example reason="rate limited"'``.
        Returns empty string if kwargs is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for k, v in kwargs.items():
        s = _truncate(mask_secrets(str(v)), max_value_length)
        if not s or " " in s or "=" in s or '"' in s or "'" in s:
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{k}="{escaped}"')
        else:
            parts.append(f"{k}={s}")

    return prefix + " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Formats all log records as ``level name message key=value...``."""

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname.lower()} {record.name} {mask_secrets(record.getMessage())}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            base += format_kv_pairs(extra)
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install a [StructuredFormatter][nostrforge.core.logger.StructuredFormatter] on the root logger."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)


class Logger:
    """Structured logger that appends keyword arguments as extra fields.

    All public methods mirror the standard logging API with an added
    ``**kwargs`` parameter. [bind()][nostrforge.core.logger.Logger.bind]
    returns a child logger that repeats the bound fields on every record.
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize a structured logger.

        Args:
            name: Logger name, maps to ``logging.getLogger(name)``.
            json_output: If True, emit JSON objects instead of key=value pairs.
            max_value_length: Maximum character length for individual values
                before truncation. Defaults to 1000.
            context: Fields repeated on every record.
        """
        if max_value_length is None:
            max_value_length = self._DEFAULT_MAX_VALUE_LENGTH
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = max_value_length
        self._context = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **context: Any) -> Logger:
        """Return a logger with *context* added to every record."""
        return Logger(
            self._logger.name,
            json_output=self._json_output,
            max_value_length=self._max_value_length,
            context={**self._context, **context},
        )

    def _fields(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        merged = {**self._context, **kwargs}
        return {
            k: _truncate(mask_secrets(str(v)), self._max_value_length)
            if isinstance(v, str)
            else v
            for k, v in merged.items()
        }

    def _format_json(self, msg: str, level: str, kwargs: dict[str, Any]) -> str:
        record = {
            "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
            "level": level,
            "logger": self._logger.name,
            "message": msg,
            **self._fields(kwargs),
        }
        return json.dumps(record, default=str)

    def _log(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if self._json_output:
            self._logger.log(
                level,
                self._format_json(msg, logging.getLevelName(level).lower(), kwargs),
                exc_info=exc_info,
            )
        else:
            fields = self._fields(kwargs)
            extra = {"structured_kv": fields} if fields else {}
            self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR level with the active exception's traceback."""
        self._log(logging.ERROR, msg, kwargs, exc_info=True)
