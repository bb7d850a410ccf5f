"""
HTTP‑роуты FastAPI сервиса извлечения.

Использование:
- GET  /health — проверка живости
- GET  /v1/extraction/schemas — перечень схем извлечения и их JSON Schema
- POST /v1/extraction/run — извлечь запись по схеме из текста
- POST /v1/structured/run — «сырой» вызов LLM (messages [+schema])
"""
import logging
from typing import List

from fastapi import APIRouter, Body, Depends, HTTPException

from extractor.schemas import (
    EXTRACTION_SCHEMAS,
    Cost,
    ExtractRequest,
    ExtractResponse,
    RunRequest,
    RunResponse,
    SchemaInfo,
    Usage,
    output_schema,
)
from extractor.services.llm_client import LLMError, ask_llm
from extractor.services.pipeline import ExtractionPipeline
from extractor.services.pricing import estimate_cost, normalize_model_label, price_per_1m_usd

router = APIRouter(tags=["Extraction"])
logger = logging.getLogger(__name__)


def get_pipeline() -> ExtractionPipeline:
    """Небольшой DI‑хелпер: вернуть новый конвейер извлечения."""
    return ExtractionPipeline()


def _cost(model_uri: str, total_tokens: int) -> Cost:
    label = normalize_model_label(model_uri)
    return Cost(
        model_label=label,
        price_per_1m=price_per_1m_usd(label),
        total_usd=estimate_cost(label, total_tokens),
    )


def _raise_llm_error(exc: LLMError) -> None:
    logger.warning(
        "LLMError code=%s status=%s attempts=%s provider_status=%s msg=%s",
        exc.code,
        exc.status_code,
        exc.attempts,
        exc.provider_status,
        str(exc),
    )
    raise HTTPException(exc.status_code, detail=exc.to_detail()) from exc


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/v1/extraction/schemas", response_model=List[SchemaInfo], summary="List extraction schemas")
def list_schemas():
    """Вернуть имена доступных схем и их именованные JSON Schema."""
    return [
        SchemaInfo(name=name, json_schema=output_schema(model))
        for name, model in sorted(EXTRACTION_SCHEMAS.items())
    ]


@router.post("/v1/extraction/run", response_model=ExtractResponse, summary="Extract a record from text")
async def extract(req: ExtractRequest = Body(...), pipeline: ExtractionPipeline = Depends(get_pipeline)):
    """
    Основной эндпоинт извлечения.

    Ошибки:
    - Неизвестная схема, пустой текст, невалидные примеры -> 400.
    - LLMError -> её статус и detail с полями code/message/attempts/model_uri.
    - Прочие исключения -> 500 Internal Server Error.
    """
    logger.info(
        "extract: request schema=%s text_len=%s examples=%s model=%s",
        req.schema_name,
        len(req.text),
        len(req.examples),
        req.model or "<default>",
    )
    try:
        res = await pipeline.extract(
            req.text,
            req.schema_name,
            model=req.model,
            examples=req.examples,
        )
    except KeyError as exc:
        raise HTTPException(400, detail=str(exc.args[0]) if exc.args else "Unknown schema")
    except ValueError as exc:
        raise HTTPException(400, detail=str(exc))
    except LLMError as exc:
        _raise_llm_error(exc)
    except Exception:
        logger.exception("extract: unexpected error")
        raise HTTPException(500, detail="Internal Server Error")

    total_tokens = int(res.usage.get("total_tokens", 0))
    return ExtractResponse(
        schema_name=req.schema_name,
        result=res.record.model_dump(),
        usage=Usage(**res.usage),
        cost=_cost(res.model_uri, total_tokens),
        model_uri=res.model_uri,
        attempts=res.attempts,
    )


@router.post("/v1/structured/run", response_model=RunResponse, summary="Raw LLM call (messages [+schema])")
async def run(req: RunRequest = Body(...)):
    """
    «Сырой» вызов провайдера.

    - Требуется минимум 2 сообщения (как правило, system + user).
    - `schema` (если передана) проксируется в провайдера через response_format.
    """
    if not req.messages or len(req.messages) < 2:
        raise HTTPException(400, detail="Provide at least 2 messages (system + user).")

    schema_payload = req.schema_ if isinstance(req.schema_, dict) else None
    logger.info(
        "run: request messages=%s schema=%s model=%s",
        len(req.messages),
        "yes" if schema_payload else "no",
        req.model or "<default>",
    )
    try:
        result, usage, model_uri, attempts = await ask_llm(
            messages=[m.model_dump() for m in req.messages],
            json_schema=schema_payload,
            model=req.model,
        )
    except LLMError as exc:
        _raise_llm_error(exc)
    except Exception:
        logger.exception("run: unexpected error")
        raise HTTPException(500, detail="Internal Server Error")

    total_tokens = int(usage.get("total_tokens", 0))
    return RunResponse(
        result=result,
        usage=Usage(
            prompt_tokens=int(usage.get("prompt_tokens", 0)),
            completion_tokens=int(usage.get("completion_tokens", 0)),
            total_tokens=total_tokens,
        ),
        cost=_cost(model_uri, total_tokens),
        model_uri=model_uri,
        attempts=attempts,
    )
