"""Static pricing table and model display names.

Rates are USD per one million tokens. Cache writes and reads are billed as a
multiple of the model's input rate.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Tuple

from pydantic import BaseModel, ConfigDict

TOKENS_PER_RATE_UNIT = 1_000_000


class ModelPricing(BaseModel):
    """Per-million-token rates for one model family."""

    model_config = ConfigDict(frozen=True)

    input_rate: float
    output_rate: float
    cache_write_mult: float = 1.25
    cache_read_mult: float = 0.10


# Insertion order matters: the first key contained in a model id wins, so more
# specific keys (opus-4-5) must precede their prefixes (opus-4).
MODEL_PRICING: Mapping[str, ModelPricing] = MappingProxyType(
    {
        "opus-4-5": ModelPricing(input_rate=5, output_rate=25),
        "opus-4": ModelPricing(input_rate=15, output_rate=75),
        "opus-3": ModelPricing(input_rate=15, output_rate=75),
        "sonnet-4-5": ModelPricing(input_rate=3, output_rate=15),
        "sonnet-4": ModelPricing(input_rate=3, output_rate=15),
        "sonnet-3-7": ModelPricing(input_rate=3, output_rate=15),
        "haiku-4-5": ModelPricing(input_rate=1, output_rate=5),
        "haiku-3-5": ModelPricing(input_rate=0.80, output_rate=4),
        "haiku-3": ModelPricing(
            input_rate=0.25, output_rate=1.25, cache_write_mult=1.20, cache_read_mult=0.12
        ),
    }
)

DEFAULT_PRICING = ModelPricing(input_rate=3, output_rate=15)

_DISPLAY_NAMES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("opus-4-5", "opus-4.5"), "Opus 4.5"),
    (("opus-4",), "Opus 4"),
    (("opus",), "Opus"),
    (("sonnet-4-5", "sonnet-4.5"), "Sonnet 4.5"),
    (("sonnet-4",), "Sonnet 4"),
    (("sonnet-3-7", "sonnet-3.7"), "Sonnet 3.7"),
    (("sonnet",), "Sonnet"),
    (("haiku-4-5", "haiku-4.5"), "Haiku 4.5"),
    (("haiku-3-5", "haiku-3.5"), "Haiku 3.5"),
    (("haiku",), "Haiku"),
)


def get_model_pricing(model_id: str) -> ModelPricing:
    """Resolve pricing by substring match against the table keys."""
    for key, pricing in MODEL_PRICING.items():
        if key in model_id:
            return pricing
    return DEFAULT_PRICING


def calculate_cost(
    model_id: str,
    *,
    input_tokens: int,
    output_tokens: int,
    cache_write_tokens: int,
    cache_read_tokens: int,
) -> float:
    """Estimate the USD cost of a token bundle billed at ``model_id`` rates."""
    pricing = get_model_pricing(model_id)
    input_cost = input_tokens * pricing.input_rate
    output_cost = output_tokens * pricing.output_rate
    cache_write_cost = cache_write_tokens * pricing.input_rate * pricing.cache_write_mult
    cache_read_cost = cache_read_tokens * pricing.input_rate * pricing.cache_read_mult
    return (input_cost + output_cost + cache_write_cost + cache_read_cost) / TOKENS_PER_RATE_UNIT


def format_model_name(model_id: str) -> str:
    """Human display name for a model id, e.g. ``Sonnet 4.5``."""
    for needles, label in _DISPLAY_NAMES:
        if any(needle in model_id for needle in needles):
            return label
    return model_id


__all__ = [
    "DEFAULT_PRICING",
    "MODEL_PRICING",
    "ModelPricing",
    "calculate_cost",
    "format_model_name",
    "get_model_pricing",
]
