from __future__ import annotations

import math
from dataclasses import dataclass

from .constants import DEFAULT_INPUT_PRICE_PER_1K, DEFAULT_OUTPUT_PRICE_PER_1K
from .core.types import ProcessingMethod


# Share of the total token count billed as input, by processing method.
INPUT_RATIOS: dict[ProcessingMethod, float] = {
    ProcessingMethod.HYBRID: 0.8,
    ProcessingMethod.VIDEO_ONLY: 0.6,
    ProcessingMethod.TRANSCRIPT_ONLY: 0.7,
    ProcessingMethod.FALLBACK: 0.7,
}


@dataclass(frozen=True)
class UnitPricing:
    input_per_1k: float = DEFAULT_INPUT_PRICE_PER_1K
    output_per_1k: float = DEFAULT_OUTPUT_PRICE_PER_1K

    def __post_init__(self) -> None:
        if self.input_per_1k < 0 or self.output_per_1k < 0:
            raise ValueError("Unit prices must be non-negative")


@dataclass(frozen=True)
class CostBreakdown:
    input_tokens: int
    output_tokens: int
    input_cost_usd: float
    output_cost_usd: float

    @property
    def total_usd(self) -> float:
        return self.input_cost_usd + self.output_cost_usd

    @property
    def total_cents(self) -> float:
        return self.total_usd * 100


def split_tokens(token_count: int, method: ProcessingMethod) -> tuple[int, int]:
    if token_count < 0:
        raise ValueError("token_count must be non-negative")
    ratio = INPUT_RATIOS.get(method, INPUT_RATIOS[ProcessingMethod.TRANSCRIPT_ONLY])
    input_tokens = math.floor(token_count * ratio)
    return input_tokens, token_count - input_tokens


class CostEstimator:
    """Converts token counts into an estimated cost for reporting.

    Only used for metering; nothing here enforces billing limits.
    """

    def __init__(self, pricing: UnitPricing | None = None) -> None:
        self._pricing = pricing or UnitPricing()

    @property
    def pricing(self) -> UnitPricing:
        return self._pricing

    def breakdown(self, token_count: int, method: ProcessingMethod) -> CostBreakdown:
        input_tokens, output_tokens = split_tokens(token_count, method)
        return CostBreakdown(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            input_cost_usd=(input_tokens / 1000) * self._pricing.input_per_1k,
            output_cost_usd=(output_tokens / 1000) * self._pricing.output_per_1k,
        )

    def estimate(self, token_count: int, method: ProcessingMethod) -> float:
        """Return the estimated cost in cents."""
        return self.breakdown(token_count, method).total_cents


def estimate_cost_cents(
    token_count: int,
    method: ProcessingMethod,
    pricing: UnitPricing | None = None,
) -> float:
    return CostEstimator(pricing).estimate(token_count, method)
