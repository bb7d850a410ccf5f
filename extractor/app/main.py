"""Точка входа FastAPI‑приложения сервиса извлечения.

Запуск локально:
    uvicorn extractor.app.main:app --reload --port 8030

В этом модуле:
- Глобальная настройка логирования на основе настроек.
- Middleware для логирования входящих HTTP‑запросов (start/end, статус,
  длительность) и для прокидывания request‑id через заголовок.
- Подключение роутов API.
"""
from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from extractor.core.logging import request_id_var, setup_logging
from extractor.core.settings import settings

from .routers import router

setup_logging(level=settings.log_level, json_logs=settings.log_json)

logger = logging.getLogger("extractor.app")

app = FastAPI(
    title="Extractor API",
    version="1.0.0",
    description="Schema-guided extraction of structured records from text via OpenAI-compatible LLMs.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


if settings.request_log:
    @app.middleware("http")
    async def _access_log_middleware(request: Request, call_next):
        """Access‑middleware: проставляет request_id и логирует начало/ошибку/завершение запроса."""
        rid = request.headers.get(settings.request_id_header) or uuid4().hex
        token = request_id_var.set(rid)
        start = time.perf_counter()
        logger.info(
            "request.start method=%s path=%s client=%s",
            request.method,
            request.url.path,
            request.client.host if request.client else "-",
        )
        try:
            response = await call_next(request)
        except Exception:
            dur_ms = int((time.perf_counter() - start) * 1000)
            logger.exception("request.error method=%s path=%s dur_ms=%s", request.method, request.url.path, dur_ms)
            request_id_var.reset(token)
            raise
        dur_ms = int((time.perf_counter() - start) * 1000)
        response.headers[settings.request_id_header] = rid
        logger.info(
            "request.end method=%s path=%s status=%s dur_ms=%s",
            request.method,
            request.url.path,
            response.status_code,
            dur_ms,
        )
        request_id_var.reset(token)
        return response
