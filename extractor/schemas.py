"""Pydantic‑схемы сервиса извлечения: записи извлечения и API DTO.
Назначение:
- записи, которые модель заполняет по тексту (Person, Data);
- реестр именованных схем извлечения;
- DTO для HTTP‑эндпоинтов;
- функция, возвращающая именованную JSON Schema для LLM."""
from __future__ import annotations

import copy
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


Role = Literal["system", "user", "assistant", "tool"]


# =============================
# Extraction records
# =============================

# Class docstrings and field descriptions below are sent to the model as part
# of the JSON Schema, so they stay in English.


class Person(BaseModel):
    """Information about a person."""

    name: Optional[str] = Field(default=None, description="The name of the person")
    hair_color: Optional[str] = Field(
        default=None, description="The color of the person's hair if known"
    )
    height_in_meters: Optional[str] = Field(
        default=None, description="Height measured in meters"
    )


class Data(BaseModel):
    """Extracted data about people."""

    people: List[Person] = Field(default_factory=list, description="Extracted data about people")


EXTRACTION_SCHEMAS: Dict[str, Type[BaseModel]] = {
    "person": Person,
    "people": Data,
}


def get_extraction_schema(name: str) -> Type[BaseModel]:
    """Вернуть модель записи по имени схемы ("person", "people").

    Бросает KeyError с перечнем известных имён, если схема не найдена.
    """
    try:
        return EXTRACTION_SCHEMAS[name]
    except KeyError:
        known = ", ".join(sorted(EXTRACTION_SCHEMAS))
        raise KeyError(f"Unknown extraction schema '{name}' (known: {known})") from None


# ===== DTO for chat messages =====


class ChatMessage(BaseModel):
    """Сообщение чата, совместимое с OpenAI‑форматом."""

    role: Role
    content: str


class ReferenceExample(BaseModel):
    """Референсный пример (few‑shot): исходный текст и ожидаемая запись."""

    text: str = Field(..., min_length=1, description="Example input text")
    output: Dict[str, Any] = Field(..., description="Expected record for the example text")


class ExtractionPrompt(BaseModel):
    """Собранный промпт: сообщения chat‑формата и именованная JSON Schema."""

    messages: List[ChatMessage]
    schema_: Dict[str, Any] = Field(..., alias="schema")

    model_config = ConfigDict(populate_by_name=True)


# ===== DTO for usage/cost =====


class Usage(BaseModel):
    """Статистика расхода токенов провайдером."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Cost(BaseModel):
    """Расчётная стоимость вызова в долларах."""

    currency: Literal["USD"] = "USD"
    model_label: str
    price_per_1m: float
    total_usd: float


# ===== DTO for extraction =====


class ExtractRequest(BaseModel):
    """
    Запрос на извлечение.

    Поля:
    - text — исходный текст.
    - schema — имя схемы извлечения ("person" или "people").
    - model — опциональная модель; по умолчанию берётся из настроек.
    - examples — опциональные референсные примеры для few‑shot.
    """

    text: str
    schema_name: str = Field(default="person", alias="schema")
    model: Optional[str] = None
    examples: List[ReferenceExample] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ExtractResponse(BaseModel):
    """Ответ извлечения: запись по схеме, usage, стоимость и служебные поля."""

    schema_name: str = Field(..., alias="schema")
    result: Dict[str, Any]
    usage: Usage
    cost: Cost
    model_uri: str
    attempts: int

    model_config = ConfigDict(populate_by_name=True)


class SchemaInfo(BaseModel):
    """Описание доступной схемы извлечения."""

    name: str
    json_schema: Dict[str, Any]


# ===== DTO for raw structured calls =====


class RunRequest(BaseModel):
    """
    Запрос на «сырой» вызов LLM.

    - messages — список сообщений (требуется минимум 2: обычно system+user).
    - schema — опциональная именованная JSON‑схема (через alias `schema_`).
    - model — опциональная модель.
    """

    messages: List[ChatMessage]
    schema_: Optional[Dict[str, Any]] = Field(default=None, alias="schema")
    model: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RunResponse(BaseModel):
    """
    Ответ «сырого» вызова.

    result — либо строка (когда схема не запрашивалась), либо объект/массив JSON.
    """

    result: Union[Dict[str, Any], List[Any], str]
    usage: Usage
    cost: Cost
    model_uri: str
    attempts: int


# ===== Helpers =====


def _require_all(node: Dict[str, Any]) -> None:
    """Перечислить все свойства объекта в `required` и запретить лишние ключи."""
    props = node.get("properties")
    if not isinstance(props, dict):
        return
    required = list(node.get("required", []))
    for k in props:
        if k not in required:
            required.append(k)
    node["required"] = required
    node["additionalProperties"] = False


def output_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    """
    Вернуть именованную JSON Schema записи для LLM.

    Схема формируется из модели Pydantic и «усиливается» по required: каждое
    свойство становится обязательным (опциональные поля остаются nullable),
    чтобы провайдеры со строгим structured output принимали схему.
    """
    schema = copy.deepcopy(model.model_json_schema())
    _require_all(schema)
    defs = schema.get("$defs") or {}
    for node in defs.values():
        if isinstance(node, dict):
            _require_all(node)
    return {"name": model.__name__, "schema": schema}
