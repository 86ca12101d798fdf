import logging
import re
from typing import Any

REDACTED = "***REDACTED***"

_SENSITIVE = re.compile(
    r"password|token|secret|api_?key|credit_?card|cvv|ssn|authorization|auth|bearer",
    re.IGNORECASE,
)


def sanitize_for_log(data: Any) -> Any:
    """Copy of ``data`` with values of sensitive keys replaced, recursing into dicts and lists."""
    if isinstance(data, dict):
        return {
            k: REDACTED if isinstance(k, str) and _SENSITIVE.search(k) else sanitize_for_log(v)
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        return type(data)(sanitize_for_log(v) for v in data)
    return data


class RedactingFilter(logging.Filter):
    """Redacts sensitive fields from dict arguments of log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, dict):
            record.args = sanitize_for_log(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(sanitize_for_log(a) for a in record.args)
        return True


def setup_logging(settings) -> None:
    level = settings.LOG_LEVEL or ("INFO" if settings.is_production else "DEBUG")
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    handler.addFilter(RedactingFilter())

    root = logging.getLogger()
    root.setLevel(level.upper())
    # Replace handlers installed by a previous call so reloads don't duplicate output
    for existing in list(root.handlers):
        if getattr(existing, "_godplan", False):
            root.removeHandler(existing)
    handler._godplan = True
    root.addHandler(handler)
