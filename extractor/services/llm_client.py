"""
Клиент для обращения к OpenAI‑совместимому chat‑completion API.

Задачи модуля:
- Управление конкурентностью запросов к провайдеру (семафор).
- Унифицированная обработка ошибок с маппингом на HTTP‑статусы (LLMError).
- Повторы (retry) при транзиентных ошибках провайдера и при ошибках JSON‑парсинга.
"""
from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Dict, List, Optional, Tuple

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    OpenAIError,
    RateLimitError,
)

from extractor.core.settings import settings
from extractor.services.templates import JSON_FIX_USER


# Ограничение параллелизма обращений к провайдеру
_SEM = asyncio.Semaphore(settings.max_concurrent)
logger = logging.getLogger(__name__)

# Общий клиент для OpenAI‑совместимого эндпойнта
_client = AsyncOpenAI(
    api_key=settings.api_key,
    base_url=settings.base_url,
    timeout=settings.http_timeout,
    max_retries=0,  # retries are handled by ask_llm
)

class LLMError(RuntimeError):
    """
    Структурированная ошибка уровня клиента LLM.

    Поля используются роутером для возврата корректного статуса и детального
    описания причины.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 422,
        code: str = "provider_error",
        provider_status: Optional[int] = None,
        attempts: Optional[int] = None,
        model_uri: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.provider_status = provider_status
        self.attempts = attempts
        self.model_uri = model_uri

    def to_detail(self) -> Dict[str, Any]:
        """Представление ошибки для поля `detail` HTTP‑ответа."""
        detail: Dict[str, Any] = {
            "code": self.code,
            "message": str(self),
            "attempts": self.attempts,
            "model_uri": self.model_uri,
        }
        if self.provider_status is not None:
            detail["provider_status"] = self.provider_status
        return detail


def resolve_model(model: Optional[str]) -> str:
    """Вернуть имя модели для запроса; без явного значения — default_model из настроек."""
    return model.strip() if model and model.strip() else settings.default_model


def _http_status(e: OpenAIError) -> int:
    return int(getattr(e, "status_code", 0) or getattr(e, "status", 0) or 0)


def _is_transient(e: OpenAIError) -> bool:
    """Ошибка, после которой имеет смысл повторить запрос.

    Решение принимается только по классу исключения и HTTP‑статусу: текст
    сообщения провайдера не анализируется.
    """
    if isinstance(e, (RateLimitError, APITimeoutError, APIConnectionError, InternalServerError)):
        return True
    return _http_status(e) >= 500


def _classify(e: OpenAIError) -> Tuple[int, str]:
    """Маппинг ошибки провайдера на (HTTP‑статус, код)."""
    http_status = _http_status(e)
    if isinstance(e, RateLimitError) or http_status == 429:
        return 429, "rate_limited"
    if isinstance(e, APITimeoutError):
        return 504, "timeout"
    if isinstance(e, APIConnectionError):
        return 502, "connection_error"
    if http_status == 401:
        return 401, "unauthorized"
    if http_status == 403:
        return 403, "forbidden"
    if http_status == 400:
        return 400, "bad_request"
    if http_status >= 500:
        return 502, "upstream_error"
    return 422, "provider_error"


async def _call_openai(payload: Dict[str, Any]):
    """
    Вызвать OpenAI‑совместимый клиент с ограничением конкурентности.

    Оборачивает реальный HTTP‑вызов семафором, чтобы не превышать лимит
    одновременных запросов к провайдеру.
    """
    async with _SEM:
        return await _client.chat.completions.create(**payload)


def _usage_of(resp: Any) -> Dict[str, int]:
    usage = getattr(resp, "usage", None)
    if usage is None:
        return {}
    if hasattr(usage, "model_dump"):
        return usage.model_dump()
    return dict(usage)


async def ask_llm(
    messages: List[Dict[str, str]],
    json_schema: Optional[Dict[str, Any]] = None,
    *,
    model: Optional[str] = None,
    max_retry_provider: Optional[int] = None,
    max_retry_json: Optional[int] = None,
) -> Tuple[Dict[str, Any] | List[Any] | str, Dict[str, int], str, int]:
    """
    Вызвать провайдера с опциональным принуждением формата JSON по схеме.

    Поведение:
    - Формирует payload из сообщений и (при наличии) именованной JSON‑схемы.
    - Управляет повторными попытками (на транзиентные ошибки провайдера и на
      ошибки парсинга JSON), с экспоненциальной задержкой.
    - При успехе возвращает:
        • либо строку (когда схема не задана),
        • либо dict/list (когда схема задана и контент корректный JSON),
      а также usage (токены), фактическое имя модели и количество попыток.
    - При неуспехе бросает LLMError с кодом причины и корректным статусом.

    Возврат:
        (result, usage_totals, model_uri, total_attempts)
    """

    model_uri = resolve_model(model)

    base_payload: Dict[str, Any] = {
        "model": model_uri,
        "messages": messages,
        "temperature": 0,
        "stream": False,
    }
    if isinstance(json_schema, dict):
        base_payload["response_format"] = {"type": "json_schema", "json_schema": json_schema}

    # Политика ретраев: берём из настроек при отсутствии явных значений
    if max_retry_provider is None:
        max_retry_provider = settings.max_retry_provider
    if max_retry_json is None:
        max_retry_json = settings.max_retry_json

    total_attempts = 0
    usage_totals = {"prompt_tokens": 0, "completion_tokens": 0}

    fix_messages = list(messages)
    for fix_try in range(max_retry_json + 1):
        delay = 0.1
        content = ""
        for prov_try in range(max_retry_provider + 1):
            total_attempts += 1
            payload = dict(base_payload)
            payload["messages"] = fix_messages

            try:
                resp = await _call_openai(payload)
            except OpenAIError as e:
                if prov_try < max_retry_provider and _is_transient(e):
                    logger.warning(
                        "ask_llm: transient provider error (attempt=%s/%s fix_try=%s/%s): %s",
                        prov_try + 1,
                        max_retry_provider + 1,
                        fix_try + 1,
                        max_retry_json + 1,
                        e,
                    )
                    await asyncio.sleep(delay + random.random() * 0.2)
                    delay = min(delay * 2, 2.0)
                    continue
                status_code, code = _classify(e)
                http_status = _http_status(e)
                logger.error("ask_llm: provider error (no retry) code=%s: %s", code, e)
                raise LLMError(
                    str(e),
                    status_code=status_code,
                    code=code,
                    provider_status=(http_status or None),
                    attempts=total_attempts,
                    model_uri=model_uri,
                ) from e

            content = resp.choices[0].message.content or ""
            usage = _usage_of(resp)
            usage_totals["prompt_tokens"] += int(usage.get("prompt_tokens", 0) or 0)
            usage_totals["completion_tokens"] += int(usage.get("completion_tokens", 0) or 0)
            break

        if not isinstance(json_schema, dict):
            usage_totals["total_tokens"] = usage_totals["prompt_tokens"] + usage_totals["completion_tokens"]
            return content, usage_totals, model_uri, total_attempts

        try:
            parsed = json.loads(content)
            if not isinstance(parsed, (dict, list)):
                raise ValueError(f"Expected JSON object/array, got {type(parsed).__name__}")
            usage_totals["total_tokens"] = usage_totals["prompt_tokens"] + usage_totals["completion_tokens"]
            return parsed, usage_totals, model_uri, total_attempts
        except ValueError:
            logger.debug(
                "ask_llm: JSON parse failed on attempt=%s (fix_try=%s)",
                total_attempts,
                fix_try + 1,
            )

        if fix_try < max_retry_json:
            # Дополнительная подсказка модели: вернуть ОДИН валидный JSON без
            # комментариев и лишнего текста строго по схеме.
            fix_messages = fix_messages + [
                {"role": "assistant", "content": content},
                {"role": "user", "content": JSON_FIX_USER},
            ]

    raise LLMError(
        f"Model did not return valid JSON after {max_retry_json + 1} attempts",
        status_code=422,
        code="json_parse_failed",
        attempts=total_attempts,
        model_uri=model_uri,
    )
