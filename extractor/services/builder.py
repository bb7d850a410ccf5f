"""Service for constructing extraction prompts."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from pydantic import ValidationError

from extractor.schemas import (
    ChatMessage,
    ExtractionPrompt,
    ReferenceExample,
    get_extraction_schema,
    output_schema,
)
from extractor.services.templates import build_extract_prompt, render_examples


class PromptBuilderService:
    """Сервис сборки сообщений system/user и JSON Schema для извлечения.

    Порядок сообщений: system (инструкция) → пары user/assistant из референсных
    примеров → user (исходный текст).
    """

    def __init__(self) -> None:
        self._log = logging.getLogger(__name__)

    def _checked_examples(
        self, schema_name: str, examples: Iterable[ReferenceExample]
    ) -> List[ReferenceExample]:
        """Проверить, что ожидаемые записи примеров соответствуют схеме.

        Невалидный пример научит модель неверному формату, поэтому такой
        пример отклоняется с ValueError.
        """
        model = get_extraction_schema(schema_name)
        out: List[ReferenceExample] = []
        for i, ex in enumerate(examples):
            try:
                record = model.model_validate(ex.output)
            except ValidationError as e:
                raise ValueError(f"Reference example #{i} does not match schema '{schema_name}': {e}") from e
            out.append(ReferenceExample(text=ex.text, output=record.model_dump()))
        return out

    def build(
        self,
        *,
        text: str,
        schema_name: str = "person",
        examples: Optional[Iterable[ReferenceExample]] = None,
    ) -> ExtractionPrompt:
        """Собрать промпт для извлечения записи по схеме `schema_name`.

        text: исходный текст (не пустой)
        schema_name: имя схемы из реестра
        examples: опциональные референсные примеры
        """
        if not text or not text.strip():
            raise ValueError("Text to extract from must not be empty")
        model = get_extraction_schema(schema_name)
        checked = self._checked_examples(schema_name, examples or [])

        system_msg, user_msg = build_extract_prompt(text=text)
        messages = [ChatMessage(role="system", content=system_msg)]
        messages.extend(
            ChatMessage(**m) for m in render_examples((ex.text, ex.output) for ex in checked)
        )
        messages.append(ChatMessage(role="user", content=user_msg))

        self._log.info(
            "build: prompt built (schema=%s, examples=%s, messages=%s, text_len=%s)",
            schema_name,
            len(checked),
            len(messages),
            len(text),
        )
        return ExtractionPrompt(messages=messages, schema_=output_schema(model))
