"""
Logging for ledger commands, budget alert scans and Celery workers.

Two renderings of the same records:

- json (production): one JSON object per line on stdout. Ledger context
  passed through ``extra`` (company, entry number, account path, budget,
  error code) is lifted into a ``ledger`` object so log pipelines can
  index it without knowing every call site.
- console (development): one line per record, prefixed with the company.

Environment variables:
- LOG_FORMAT: "json" or "console" (default: console when DEBUG)
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: DEBUG when DEBUG)

Usage:
    logger.info("Journal entry posted", extra={"company_id": company.id, "entry_number": "JE-000001"})
"""
import json
import logging
import os
from datetime import datetime, timezone

from accounting.exceptions import LedgerError

APP_LOGGERS = (
    "accounts",
    "accounting",
    "rates",
    "reports",
    "budgets",
    "ops",
    "celery",
)

# ``extra`` keys that identify what a ledger record is about.
LEDGER_CONTEXT_FIELDS = (
    "company_id",
    "company_slug",
    "entry_number",
    "account_path",
    "budget_id",
    "alert_id",
    "alert_type",
    "error_code",
)

CONSOLE_FORMAT = "[{asctime}] {levelname} {name} company={company_id} {message}"

# Attributes every LogRecord carries; anything else came from ``extra``.
RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}


def get_logging_config(debug: bool = False) -> dict:
    """Django LOGGING dict for the current environment."""
    level = os.environ.get("LOG_LEVEL", "DEBUG" if debug else "INFO")
    renderer = os.environ.get("LOG_FORMAT", "console" if debug else "json")

    if renderer == "json":
        formatters = {"json": {"()": "ops.logging_config.JsonFormatter"}}
        console = {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": "ext://sys.stdout",
        }
    else:
        formatters = {"verbose": {"format": CONSOLE_FORMAT, "style": "{"}}
        console = {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
            "filters": ["ledger_context"],
        }

    def route(logger_level, handler="console"):
        return {"handlers": [handler], "level": logger_level, "propagate": False}

    loggers = {name: route(level) for name in APP_LOGGERS}
    loggers.update({
        "django": route(level),
        "django.request": route(level if debug else "ERROR"),
        # SQL echo only while debugging.
        "django.db.backends": route("DEBUG", "console") if debug else route("INFO", "null"),
    })

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"ledger_context": {"()": "ops.logging_config.LedgerContextFilter"}},
        "formatters": formatters,
        "handlers": {"console": console, "null": {"class": "logging.NullHandler"}},
        "root": {"handlers": ["console"], "level": level},
        "loggers": loggers,
    }


class LedgerContextFilter(logging.Filter):
    """Give every record the context fields the console format names."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "company_id"):
            record.company_id = "-"
        return True


def _jsonable(value):
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record:

        {"timestamp", "level", "logger", "message", "location",
         "ledger": {...context fields...}, "extra": {...}, "error": {...}}

    ``ledger`` and ``extra`` are omitted when empty. ``error`` is present
    when the record carries exc_info; ledger errors add their code and
    kind.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        payload = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        context, extra = {}, {}
        for key, value in vars(record).items():
            if key in RECORD_ATTRIBUTES:
                continue
            target = context if key in LEDGER_CONTEXT_FIELDS else extra
            target[key] = _jsonable(value)
        if context:
            payload["ledger"] = context
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["error"] = self._error(record)

        return json.dumps(payload, default=str)

    def _error(self, record: logging.LogRecord) -> dict:
        exc = record.exc_info[1]
        error = {
            "type": type(exc).__name__,
            "traceback": self.formatException(record.exc_info),
        }
        if isinstance(exc, LedgerError):
            error["code"] = exc.code
            error["kind"] = exc.kind
        return error
