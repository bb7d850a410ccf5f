import httpx
import pytest
from openai import (
    APITimeoutError,
    AuthenticationError,
    BadRequestError,
    InternalServerError,
    PermissionDeniedError,
    RateLimitError,
)

from extractor.services import llm_client
from extractor.services.llm_client import LLMError, ask_llm, resolve_model

_REQ = httpx.Request("POST", "https://api.example.test/v1/chat/completions")

MESSAGES = [
    {"role": "system", "content": "You are an expert extraction algorithm."},
    {"role": "user", "content": "Alan Smith is 6 feet tall and has blond hair."},
]
SCHEMA = {"name": "Person", "schema": {"type": "object"}}


def _status_error(cls, status, message=None):
    return cls(
        message or f"Error code: {status}",
        response=httpx.Response(status, request=_REQ),
        body=None,
    )


class _FakeProvider:
    """Replays scripted outcomes and records payloads."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.payloads = []

    async def __call__(self, payload):
        self.payloads.append(payload)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def provider(monkeypatch):
    def _install(*outcomes):
        fake = _FakeProvider(*outcomes)
        monkeypatch.setattr(llm_client, "_call_openai", fake)
        return fake

    return _install


@pytest.mark.unit
def test_resolve_model_defaults_to_settings():
    assert resolve_model(None) == "gpt-4o-mini"
    assert resolve_model("  ") == "gpt-4o-mini"
    assert resolve_model("gpt-4.1") == "gpt-4.1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_plain_text_without_schema(provider, completion):
    fake = provider(completion("hello"))
    result, usage, model_uri, attempts = await ask_llm(MESSAGES)
    assert result == "hello"
    assert usage == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}
    assert model_uri == "gpt-4o-mini"
    assert attempts == 1
    assert "response_format" not in fake.payloads[0]
    assert fake.payloads[0]["temperature"] == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_schema_sets_response_format_and_parses_json(provider, completion):
    fake = provider(completion('{"name": "Alan Smith", "hair_color": "blond", "height_in_meters": "1.83"}'))
    result, _, _, _ = await ask_llm(MESSAGES, SCHEMA, model="gpt-4.1")
    assert result["name"] == "Alan Smith"
    assert fake.payloads[0]["response_format"] == {"type": "json_schema", "json_schema": SCHEMA}
    assert fake.payloads[0]["model"] == "gpt-4.1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_json_gets_corrective_message(provider, completion):
    fake = provider(completion("Sure! Here is the JSON"), completion('{"name": null}'))
    result, usage, _, attempts = await ask_llm(MESSAGES, SCHEMA)
    assert result == {"name": None}
    assert attempts == 2
    assert usage["total_tokens"] == 30
    second = fake.payloads[1]["messages"]
    assert len(second) == len(MESSAGES) + 2
    assert second[-2] == {"role": "assistant", "content": "Sure! Here is the JSON"}
    assert second[-1]["role"] == "user"
    assert "valid JSON" in second[-1]["content"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scalar_json_is_not_accepted(provider, completion):
    provider(completion("42"), completion("[]"))
    result, _, _, attempts = await ask_llm(MESSAGES, SCHEMA)
    assert result == []
    assert attempts == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_json_retries_exhausted(provider, completion):
    provider(completion("nope"), completion("still nope"))
    with pytest.raises(LLMError) as ei:
        await ask_llm(MESSAGES, SCHEMA, max_retry_json=1)
    assert ei.value.code == "json_parse_failed"
    assert ei.value.status_code == 422
    assert ei.value.attempts == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_transient_error_is_retried(provider, completion, no_sleep):
    provider(_status_error(RateLimitError, 429), APITimeoutError(request=_REQ), completion('{"name": "Jeff"}'))
    result, _, _, attempts = await ask_llm(MESSAGES, SCHEMA, max_retry_provider=2)
    assert result == {"name": "Jeff"}
    assert attempts == 3
    assert len(no_sleep) == 2
    assert all(0.1 <= d <= 2.2 for d in no_sleep)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rate_limit_after_retries_maps_to_429(provider, no_sleep):
    provider(_status_error(RateLimitError, 429), _status_error(RateLimitError, 429))
    with pytest.raises(LLMError) as ei:
        await ask_llm(MESSAGES, SCHEMA, max_retry_provider=1)
    err = ei.value
    assert (err.status_code, err.code, err.provider_status, err.attempts) == (429, "rate_limited", 429, 2)
    assert err.model_uri == "gpt-4o-mini"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_bad_request_is_not_retried(provider):
    fake = provider(_status_error(BadRequestError, 400))
    with pytest.raises(LLMError) as ei:
        await ask_llm(MESSAGES, SCHEMA, max_retry_provider=3)
    assert (ei.value.status_code, ei.value.code) == (400, "bad_request")
    assert len(fake.payloads) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unauthorized_maps_to_401(provider):
    provider(_status_error(AuthenticationError, 401))
    with pytest.raises(LLMError) as ei:
        await ask_llm(MESSAGES)
    assert ei.value.code == "unauthorized"
    detail = ei.value.to_detail()
    assert detail["provider_status"] == 401
    assert detail["attempts"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_context_length_error_mentioning_429_is_not_retried(provider, no_sleep):
    err = _status_error(
        BadRequestError,
        400,
        "Error code: 400 - maximum context length is 128000 tokens, however you requested 134290 tokens",
    )
    fake = provider(err)
    with pytest.raises(LLMError) as ei:
        await ask_llm(MESSAGES, SCHEMA, max_retry_provider=3)
    assert (ei.value.status_code, ei.value.code) == (400, "bad_request")
    assert len(fake.payloads) == 1
    assert no_sleep == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_forbidden_with_unavailable_text_maps_to_403(provider, no_sleep):
    fake = provider(
        _status_error(PermissionDeniedError, 403, "Error code: 403 - model unavailable in your region")
    )
    with pytest.raises(LLMError) as ei:
        await ask_llm(MESSAGES, SCHEMA, max_retry_provider=3)
    assert (ei.value.status_code, ei.value.code, ei.value.provider_status) == (403, "forbidden", 403)
    assert len(fake.payloads) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_server_error_is_retried_then_maps_to_upstream_error(provider, no_sleep):
    fake = provider(_status_error(InternalServerError, 503), _status_error(InternalServerError, 503))
    with pytest.raises(LLMError) as ei:
        await ask_llm(MESSAGES, SCHEMA, max_retry_provider=1)
    assert (ei.value.status_code, ei.value.code) == (502, "upstream_error")
    assert len(fake.payloads) == 2
