"""
Completion cost accounting.

Prices are USD per 1 million tokens. Dated model ids such as
``claude-sonnet-4-20250514`` resolve to their family entry by longest
prefix, so new snapshots are billed without a table change.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import NamedTuple


class ModelPricing(NamedTuple):
    input_cost: Decimal
    output_cost: Decimal


MODEL_PRICING: dict[str, ModelPricing] = {
    # Anthropic
    "claude-opus-4": ModelPricing(Decimal("15.00"), Decimal("75.00")),
    "claude-sonnet-4": ModelPricing(Decimal("3.00"), Decimal("15.00")),
    "claude-3-5-sonnet": ModelPricing(Decimal("3.00"), Decimal("15.00")),
    "claude-3-5-haiku": ModelPricing(Decimal("0.80"), Decimal("4.00")),
    # OpenAI
    "gpt-4o": ModelPricing(Decimal("2.50"), Decimal("10.00")),
    "gpt-4o-mini": ModelPricing(Decimal("0.15"), Decimal("0.60")),
}

# Unknown models are billed at zero rather than guessed
UNKNOWN_PRICING = ModelPricing(Decimal("0"), Decimal("0"))

_PER_MILLION = Decimal("1000000")


@dataclass
class UsageCost:
    """Cost of one completion."""
    model: str
    input_tokens: int
    output_tokens: int
    input_cost: Decimal
    output_cost: Decimal

    @property
    def total_cost(self) -> Decimal:
        return self.input_cost + self.output_cost


def resolve_pricing(model: str) -> ModelPricing:
    """Exact match first, then the longest table key ``model`` starts with."""
    if model in MODEL_PRICING:
        return MODEL_PRICING[model]
    family = max(
        (key for key in MODEL_PRICING if model.startswith(key)),
        key=len,
        default=None,
    )
    return MODEL_PRICING[family] if family else UNKNOWN_PRICING


def calculate_cost(model: str, input_tokens: int, output_tokens: int = 0) -> UsageCost:
    pricing = resolve_pricing(model)
    return UsageCost(
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        input_cost=pricing.input_cost * input_tokens / _PER_MILLION,
        output_cost=pricing.output_cost * output_tokens / _PER_MILLION,
    )
