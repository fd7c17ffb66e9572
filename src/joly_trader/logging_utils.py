from __future__ import annotations

import json
import logging
import sys
from typing import Any, TextIO

# Structured fields callers attach via ``extra=``. Secrets never go here.
_EXTRA_KEYS = (
    "address",
    "token_id",
    "side",
    "phase",
    "order_id",
    "tx_hash",
    "status_code",
    "method",
    "path",
)

_NOISY_LOGGERS = ("httpx", "httpcore", "web3", "urllib3", "uvicorn.access")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``msg`` is an event name such as ``order_submitted``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(
            {key: getattr(record, key) for key in _EXTRA_KEYS if hasattr(record, key)}
        )
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str, *, stream: TextIO | None = None) -> None:
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    # Per-request and RPC chatter stays available at DEBUG on the named logger.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
