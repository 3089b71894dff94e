"""Per-provider token pricing (USD per million tokens)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ModelPrice:
    input_per_million: float
    output_per_million: float

    def cost(self, tokens_in: int, tokens_out: int) -> float:
        return (tokens_in / 1_000_000) * self.input_per_million + (
            tokens_out / 1_000_000
        ) * self.output_per_million


# Ordered most specific first: the first substring found in the model name wins.
# The empty pattern is the provider default.
DEFAULT_PRICES: dict[str, list[tuple[str, ModelPrice]]] = {
    "openai": [
        ("gpt-4o-mini", ModelPrice(0.15, 0.60)),
        ("gpt-4-turbo", ModelPrice(10.0, 30.0)),
        ("gpt-4o", ModelPrice(5.0, 20.0)),
        ("gpt-4", ModelPrice(30.0, 60.0)),
        ("gpt-3.5", ModelPrice(0.5, 1.5)),
        ("", ModelPrice(10.0, 30.0)),
    ],
    "anthropic": [
        ("haiku", ModelPrice(0.25, 1.25)),
        ("", ModelPrice(3.0, 15.0)),
    ],
    "zhipu": [
        ("glm-4.6", ModelPrice(2.0, 2.0)),
        ("plus", ModelPrice(2.0, 2.0)),
        ("", ModelPrice(1.0, 1.0)),
    ],
    "llama": [
        ("", ModelPrice(0.0, 0.0)),
    ],
}


class PricingTable:
    def __init__(self, prices: dict[str, list[tuple[str, ModelPrice]]] | None = None) -> None:
        source = DEFAULT_PRICES if prices is None else prices
        self._prices = {provider.lower(): list(rows) for provider, rows in source.items()}

    def price_for(self, provider: str, model: str) -> ModelPrice | None:
        rows = self._prices.get(provider.lower())
        if not rows:
            return None
        name = model.lower()
        for pattern, price in rows:
            if pattern in name:
                return price
        return None

    def cost(self, provider: str, model: str, tokens_in: int, tokens_out: int) -> float:
        price = self.price_for(provider, model)
        if price is None:
            logger.warning(
                "No pricing for model; recording zero cost",
                extra={"provider": provider, "model": model},
            )
            return 0.0
        return price.cost(tokens_in, tokens_out)
