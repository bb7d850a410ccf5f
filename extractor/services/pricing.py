"""
Вспомогательные функции расчёта стоимости вызова.

Модель ценообразования упрощена и задаётся тарифом на 1К токенов для каждого
ярлыка модели. Стоимость ответа считается пропорционально общему числу токенов,
возвращаемому провайдером.
"""
from __future__ import annotations

from typing import Dict

DEFAULT_LABEL = "gpt-4o-mini"

# Blended price per 1K tokens in USD per model (rough public data)
PRICING_USD_PER_1K: Dict[str, float] = {
    "gpt-4o-mini": 0.0003,
    "gpt-4o": 0.005,
    "gpt-4.1-nano": 0.0002,
    "gpt-4.1-mini": 0.0008,
    "gpt-4.1": 0.004,
    "o3-mini": 0.0022,
    "o4-mini": 0.0022,
}

# Known model name prefixes -> pricing labels; longer prefixes first
MODEL_PREFIXES = {
    "gpt-4o-mini": "gpt-4o-mini",
    "gpt-4o": "gpt-4o",
    "gpt-4.1-nano": "gpt-4.1-nano",
    "gpt-4.1-mini": "gpt-4.1-mini",
    "gpt-4.1": "gpt-4.1",
    "o3-mini": "o3-mini",
    "o4-mini": "o4-mini",
}


def normalize_model_label(model_uri: str) -> str:
    """
    Преобразовать имя модели (возможно, с датой версии или префиксом
    провайдера вида "openai/gpt-4o") к ярлыку для прайсинга.
    Если ничего не найдено — используется DEFAULT_LABEL.
    """
    name = model_uri.lower().rsplit("/", 1)[-1]
    for prefix, label in MODEL_PREFIXES.items():
        if name.startswith(prefix):
            return label
    return DEFAULT_LABEL


def price_per_1k_usd(model_label: str) -> float:
    """Цена за 1К токенов в долларах для указанного ярлыка модели."""
    return float(PRICING_USD_PER_1K.get(model_label, PRICING_USD_PER_1K[DEFAULT_LABEL]))


def price_per_1m_usd(model_label: str) -> float:
    """Цена за 1М токенов в долларах для указанного ярлыка модели."""
    return round(price_per_1k_usd(model_label) * 1000.0, 6)


def estimate_cost(model_label: str, total_tokens: int) -> float:
    """Расчётная стоимость вызова в долларах."""
    return round((total_tokens / 1000.0) * price_per_1k_usd(model_label), 6)
