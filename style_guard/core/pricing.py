"""
Pricing calculations for normalization completions.

Maps model tiers to provider model ids and estimates the cost of a
completion from a fixed rate table.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_UP
from enum import Enum
from typing import Dict

from .token_counter import TokenUsage


class ModelTier(Enum):
    """Model tiers an organization can choose from."""
    HAIKU = "haiku"
    SONNET = "sonnet"


# Provider model id per tier
MODEL_IDS: Dict[ModelTier, str] = {
    ModelTier.HAIKU: "claude-haiku-4-5-20251001",
    ModelTier.SONNET: "claude-sonnet-4-20250514",
}


def model_for_tier(tier: ModelTier) -> str:
    """Return the provider model id for a tier."""
    return MODEL_IDS[tier]


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_cost_per_1m: Decimal  # Cost per 1M input tokens
    output_cost_per_1m: Decimal  # Cost per 1M output tokens


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported models."""
    prices: Dict[str, ModelPricing]

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Args:
            model: Provider model id

        Returns:
            ModelPricing for the model

        Raises:
            ValueError: If model is not supported
        """
        if model not in self.prices:
            raise ValueError(f"Unsupported model: {model}")
        return self.prices[model]


# Fixed pricing table in USD - no dynamic fetching, no defaults
PRICING_TABLE = PricingTable({
    MODEL_IDS[ModelTier.HAIKU]: ModelPricing(
        input_cost_per_1m=Decimal("0.80"),
        output_cost_per_1m=Decimal("4.00")
    ),
    MODEL_IDS[ModelTier.SONNET]: ModelPricing(
        input_cost_per_1m=Decimal("3.00"),
        output_cost_per_1m=Decimal("15.00")
    ),
})

COST_QUANTUM = Decimal("0.0001")


def calculate_cost(model: str, usage: TokenUsage) -> Decimal:
    """Calculate the estimated cost of one completion.

    Args:
        model: Provider model id
        usage: Token usage data

    Returns:
        Total cost rounded UP to 4 decimal places

    Raises:
        ValueError: If model is not supported
    """
    pricing = PRICING_TABLE.get_pricing(model)

    input_cost = (Decimal(usage.input_tokens) / Decimal("1000000")) * pricing.input_cost_per_1m
    output_cost = (Decimal(usage.output_tokens) / Decimal("1000000")) * pricing.output_cost_per_1m

    # Conservative rounding (always round UP)
    total_cost = input_cost + output_cost
    return total_cost.quantize(COST_QUANTUM, rounding=ROUND_UP)
