from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Loggers that additionally get a file of their own.
CHANNELS = {
    "gstbill.stock": "stock.log",
    "gstbill.invoices": "invoices.log",
}

# Passed via logger.x(..., extra={...}) and copied into the JSON line.
CONTEXT_FIELDS = ("product_id", "invoice_id", "purchase_id", "command")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class _AppFileHandler(RotatingFileHandler):
    pass


def _handler(path: Path, level: int) -> _AppFileHandler:
    fh = _AppFileHandler(path, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
    fh.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    fh.setLevel(level)
    return fh


def _detach(logger: logging.Logger) -> None:
    for h in list(logger.handlers):
        if isinstance(h, _AppFileHandler):
            logger.removeHandler(h)
            h.close()


def shutdown_logging() -> None:
    """Closes every file handler installed by setup_logging."""
    _detach(logging.getLogger())
    for name in CHANNELS:
        _detach(logging.getLogger(name))


def setup_logging(logs_dir: Path, level: int = logging.INFO) -> None:
    """app.log gets everything at ``level``, errors.log only errors.

    Calling it again points the handlers at the new directory; handlers
    installed by anything else (test runners, embedding apps) are left alone.
    """
    logs_dir.mkdir(parents=True, exist_ok=True)
    shutdown_logging()

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(_handler(logs_dir / "app.log", level))
    root.addHandler(_handler(logs_dir / "errors.log", logging.ERROR))

    for name, filename in CHANNELS.items():
        logger = logging.getLogger(name)
        logger.addHandler(_handler(logs_dir / filename, level))
        logger.setLevel(level)
