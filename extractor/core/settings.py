"""Настройки сервиса извлечения (через pydantic‑settings).

Читает `.env` в рабочей директории и переменные с префиксом `EXTRACTOR_`.

Основные поля:
- api_key, base_url — параметры доступа к OpenAI‑совместимому провайдеру.
- default_model — модель по умолчанию, если в запросе модель не указана.
- max_concurrent — ограничение параллелизма обращений к провайдеру.
- http_timeout — таймаут HTTP‑клиента.
- max_retry_provider/max_retry_json/max_retry_validation — политика повторов
  по ошибкам провайдера, парсинга JSON и валидации схемы соответственно.
- log_level, log_json, request_log, request_id_header — логирование и request‑id.
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic-класс настроек сервиса."""
    # Read from .env in the working directory, use EXTRACTOR_* prefix for vars
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_prefix="EXTRACTOR_",
        case_sensitive=False,
    )

    api_key: str = Field(..., description="API key for the OpenAI-compatible provider")
    base_url: str = Field("https://api.openai.com/v1", description="OpenAI-compatible base URL")
    default_model: str = Field("gpt-4o-mini", description="Model used when a request does not name one")

    max_concurrent: int = Field(10, description="Maximum number of parallel requests to the provider")

    # HTTP client timeout (seconds) for provider calls
    http_timeout: int = Field(120, description="HTTP timeout seconds for provider calls")

    # Retry policy
    max_retry_provider: int = Field(2, description="Retries on transient provider errors")
    max_retry_json: int = Field(2, description="Retries when JSON parsing fails")
    max_retry_validation: int = Field(1, description="Re-asks when the JSON does not match the schema")

    # Logging configuration
    log_level: str = "INFO"   # EXTRACTOR_LOG_LEVEL
    log_json: bool = False    # EXTRACTOR_LOG_JSON
    request_log: bool = Field(True, description="Enable HTTP request/response logging middleware")
    request_id_header: str = Field("X-Request-ID", description="Header used to pass request id")


settings = Settings()
