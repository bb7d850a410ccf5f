"""Помощники для загрузки шаблонов и сборки текстов промптов."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple
import logging


# Prompts directory
_PKG_ROOT = Path(__file__).resolve().parents[1]
PROMPT_DIR = _PKG_ROOT / "prompts"

_log = logging.getLogger(__name__)

EXTRACT_SYSTEM = (PROMPT_DIR / "extract.system.md").read_text(encoding="utf-8").strip()
EXTRACT_USER_TEMPLATE = (PROMPT_DIR / "extract_user.tpl.md").read_text(encoding="utf-8")

JSON_FIX_USER = (PROMPT_DIR / "json_fix.user.md").read_text(encoding="utf-8").strip()
VALIDATION_FIX_USER_TEMPLATE = (PROMPT_DIR / "validation_fix.user.tpl.md").read_text(encoding="utf-8")


def build_extract_user(*, text: str) -> str:
    """Собрать пользовательское сообщение с исходным текстом."""
    user = EXTRACT_USER_TEMPLATE.format(TEXT=text).strip()
    _log.debug("tmpl: extract user built (text_len=%s, out_len=%s)", len(text), len(user))
    return user


def render_examples(examples: Iterable[Tuple[str, Dict[str, Any]]]) -> List[Dict[str, str]]:
    """Развернуть референсные примеры в чередующиеся сообщения user/assistant.

    Каждый пример — пара (текст, ожидаемая запись). Запись сериализуется в JSON
    так же, как модель должна ответить.
    """
    messages: List[Dict[str, str]] = []
    for text, output in examples:
        messages.append({"role": "user", "content": build_extract_user(text=text)})
        messages.append({"role": "assistant", "content": json.dumps(output, ensure_ascii=False)})
    return messages


def build_extract_prompt(*, text: str) -> Tuple[str, str]:
    """Вернуть пару (system, user) сообщений для извлечения."""
    return EXTRACT_SYSTEM, build_extract_user(text=text)


def build_validation_fix(errors: str) -> str:
    """Подсказка модели после ответа, не прошедшего валидацию схемы."""
    return VALIDATION_FIX_USER_TEMPLATE.format(ERRORS=errors.strip()).strip()
