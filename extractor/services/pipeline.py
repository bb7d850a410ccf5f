"""Extraction pipeline: prompt -> model call -> schema validation."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, Optional

from pydantic import BaseModel, ValidationError

from extractor.core.settings import settings
from extractor.schemas import ReferenceExample, get_extraction_schema
from extractor.services.builder import PromptBuilderService
from extractor.services.llm_client import LLMError, ask_llm
from extractor.services.templates import build_validation_fix


AskFn = Callable[..., Awaitable[tuple]]


@dataclass
class ExtractionResult:
    """Результат извлечения: запись по схеме и служебные данные вызова."""

    record: BaseModel
    usage: Dict[str, int] = field(default_factory=dict)
    model_uri: str = ""
    attempts: int = 0


class ExtractionPipeline:
    """Конвейер извлечения: сборка промпта → вызов модели → валидация схемой.

    Ответ модели, который разобрался как JSON, но не прошёл валидацию
    Pydantic‑моделью, отправляется обратно модели вместе с ошибками валидации
    (не более `max_retry_validation` раз).
    """

    def __init__(
        self,
        builder: Optional[PromptBuilderService] = None,
        ask: Optional[AskFn] = None,
        *,
        max_retry_validation: Optional[int] = None,
    ) -> None:
        self._builder = builder or PromptBuilderService()
        self._ask = ask or ask_llm
        self._max_retry_validation = (
            settings.max_retry_validation if max_retry_validation is None else max_retry_validation
        )
        self._log = logging.getLogger(__name__)

    async def extract(
        self,
        text: str,
        schema: str = "person",
        *,
        model: Optional[str] = None,
        examples: Optional[Iterable[ReferenceExample]] = None,
    ) -> ExtractionResult:
        """Извлечь запись по схеме `schema` из текста.

        Ошибки сборки промпта (пустой текст, неизвестная схема, невалидные
        примеры) пробрасываются как ValueError/KeyError; ошибки провайдера и
        исчерпание повторов — как LLMError.
        """
        record_model = get_extraction_schema(schema)
        prompt = self._builder.build(text=text, schema_name=schema, examples=examples)
        messages = [m.model_dump() for m in prompt.messages]

        usage_totals = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
        attempts = 0
        model_uri = ""
        for try_no in range(self._max_retry_validation + 1):
            result, usage, model_uri, used = await self._ask(
                messages=messages,
                json_schema=prompt.schema_,
                model=model,
            )
            attempts += used
            for k in usage_totals:
                usage_totals[k] += int(usage.get(k, 0))

            try:
                record = record_model.model_validate(result)
            except ValidationError as e:
                self._log.warning(
                    "extract: validation failed (schema=%s try=%s/%s errors=%s)",
                    schema,
                    try_no + 1,
                    self._max_retry_validation + 1,
                    e.error_count(),
                )
                messages = messages + [
                    {"role": "assistant", "content": json.dumps(result, ensure_ascii=False)},
                    {"role": "user", "content": build_validation_fix(str(e))},
                ]
                continue

            self._log.info(
                "extract: success (schema=%s model=%s attempts=%s tokens=%s)",
                schema,
                model_uri,
                attempts,
                usage_totals["total_tokens"],
            )
            return ExtractionResult(
                record=record,
                usage=usage_totals,
                model_uri=model_uri,
                attempts=attempts,
            )

        raise LLMError(
            f"Model output did not match schema '{schema}' after {self._max_retry_validation + 1} attempts",
            status_code=422,
            code="validation_failed",
            attempts=attempts,
            model_uri=model_uri,
        )
