"""
Logging setup for blobauth.

Every handler installed here carries a ``SensitiveDataFilter``, so account
keys, SharedKey signatures and SAS ``sig`` values never reach a log sink.
Records can be rendered as text for terminals or as one JSON object per
line for log shippers.
"""

import json
import logging
import logging.handlers
import re
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

# Correlation ID of the operation running in the current context
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

REDACTED = "***REDACTED***"

_REDACTIONS = [
    # SharedKey account:signature, with or without an Authorization: prefix
    re.compile(r"(SharedKey(?:Lite)?\s+[^:\s]+:)\S+", re.IGNORECASE),
    re.compile(r"(Authorization:\s+)\S+(?:\s+\S+)?", re.IGNORECASE),
    # Connection strings and config dumps
    re.compile(r"(AccountKey=)[^;\s]+", re.IGNORECASE),
    re.compile(r"(account_key[\"']?\s*[:=]\s*[\"']?)[^\s\"',]+", re.IGNORECASE),
    # SAS query strings
    re.compile(r"([?&]sig=)[^&\s]+", re.IGNORECASE),
]

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMG]?B)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {None: 1, "B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}


def redact(text: str) -> str:
    """Replace credentials and signatures in ``text`` with a marker."""
    for pattern in _REDACTIONS:
        text = pattern.sub(rf"\g<1>{REDACTED}", text)
    return text


class SensitiveDataFilter(logging.Filter):
    """Redacts keys and signatures from records before they are emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Arguments are merged first so secrets passed as %s args are caught too.
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg, record.args = cleaned, None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        corr_id = correlation_id.get()
        if corr_id:
            entry["correlation_id"] = corr_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line text output, tagged with the correlation ID when one is set."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        corr_id = correlation_id.get()
        return f"{line} [corr={corr_id}]" if corr_id else line


def set_correlation_id(corr_id: Optional[str] = None) -> Token:
    """Set the correlation ID for the current context, generating one if needed."""
    return correlation_id.set(corr_id or str(uuid.uuid4()))


@contextmanager
def correlation_scope(corr_id: Optional[str] = None) -> Iterator[str]:
    """
    Run a block under a correlation ID.

    The previous ID (usually none) is restored on exit.

    Example:
        with correlation_scope() as corr_id:
            await client.put_blob(...)
    """
    token = set_correlation_id(corr_id)
    try:
        yield correlation_id.get()
    finally:
        correlation_id.reset(token)


def _attach(root: logging.Logger, handler: logging.Handler, formatter: logging.Formatter) -> None:
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    handler.addFilter(SensitiveDataFilter())
    root.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    format_type: str = "text",
    log_file: Optional[str] = None,
    rotation_size: str = "10MB",
    rotation_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Root log level name
        format_type: ``"json"`` or ``"text"``
        log_file: Also write to this file, rotated by size
        rotation_size: Rotation threshold such as ``"10MB"``
        rotation_count: Rotated files to keep
        module_levels: Level overrides per logger name,
                      e.g. {"blobauth.auth.sharedkey": "DEBUG"}
    """
    root = logging.getLogger()
    root.setLevel(logging.getLevelName(level.upper()))
    root.handlers.clear()

    formatter = JSONFormatter() if format_type == "json" else TextFormatter()

    # stdout is reserved for command output.
    _attach(root, logging.StreamHandler(sys.stderr), formatter)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=_parse_size(rotation_size),
            backupCount=rotation_count,
            encoding="utf-8",
        )
        _attach(root, rotating, formatter)

    for name, name_level in (module_levels or {}).items():
        logging.getLogger(name).setLevel(logging.getLevelName(name_level.upper()))

    root.debug(f"Logging configured level={level} format={format_type} file={log_file}")


def _parse_size(size_str: str) -> int:
    """
    Convert a size such as ``"10MB"`` or ``"512kb"`` to bytes.

    Raises:
        ValueError: If the size cannot be parsed
    """
    match = _SIZE_PATTERN.match(size_str)
    if not match:
        raise ValueError(f"Invalid size: {size_str!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.upper() if unit else None])


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Log ``message`` with ``context`` attached for the JSON formatter."""
    logger.log(level, message, extra={"context": context} if context else None)
