from __future__ import annotations

import json
import logging
import sys
from logging import Handler, LogRecord
from typing import Any, Dict
import contextvars


# Correlation ID (set by HTTP middleware)
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")
"""Контекстная переменная с идентификатором запроса (для корреляции логов)."""


class _RequestIdFilter(logging.Filter):
    """Фильтр логов, который добавляет `request_id` в запись лога."""

    def filter(self, record: LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


class _JsonFormatter(logging.Formatter):
    """JSON‑форматтер: одна запись лога — один объект в строке."""

    def format(self, record: LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "line": record.lineno,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _has_request_id_filter(handler: Handler) -> bool:
    return any(isinstance(f, _RequestIdFilter) for f in handler.filters)


def setup_logging(*, level: str | int = "INFO", json_logs: bool = False) -> None:
    """Инициализировать корневой логгер с форматтером и фильтром request_id.

    Уровень можно передать строкой ("debug", "INFO") или числом. Повторные
    вызовы не дублируют хендлеры и фильтры — только обновляется уровень.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    if root.handlers:
        # Already configured by the host (uvicorn, pytest); just ensure our filter is present
        for h in root.handlers:
            if not _has_request_id_filter(h):
                h.addFilter(_RequestIdFilter())
        root.setLevel(level)
        return

    handler: Handler = logging.StreamHandler(stream=sys.stdout)
    handler.addFilter(_RequestIdFilter())
    if json_logs:
        handler.setFormatter(_JsonFormatter())
    else:
        fmt = "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] [rid=%(request_id)s] %(message)s"
        datefmt = "%Y-%m-%d %H:%M:%S"
        handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))

    root.addHandler(handler)
    root.setLevel(level)
