"""extractor — извлечение структурированных данных из текста LLM‑моделью.

Основные задачи пакета:
- Декларация схем извлечения (Person, Data) и выдача именованной JSON Schema.
- Сборка сообщений system/user (с опциональными референсными примерами).
- Вызов OpenAI‑совместимой модели с принуждением формата JSON по схеме и
  валидация ответа Pydantic‑моделью.

Пакет включает FastAPI‑приложение, CLI (`python -m extractor`), сервисы
(templates/builder/llm_client/pipeline/pricing) и инфраструктуру
(settings/logging).
"""
