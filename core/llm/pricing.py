"""
Token pricing used to estimate the cost of each model call.

Prices are USD per one million tokens. Model names are matched on the longest
known prefix, so dated variants (``gpt-4o-2024-08-06``,
``claude-3-haiku-20240307``) resolve to their family price.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Tuple

MODEL_PRICING: Dict[str, Dict[str, Tuple[Decimal, Decimal]]] = {
    "openai": {
        "gpt-5": (Decimal("3"), Decimal("12")),
        "gpt-4o": (Decimal("2.5"), Decimal("10")),
        "gpt-4o-mini": (Decimal("0.15"), Decimal("0.6")),
        "gpt-4-turbo": (Decimal("10"), Decimal("30")),
        "gpt-4": (Decimal("10"), Decimal("30")),
        "gpt-3.5-turbo": (Decimal("0.5"), Decimal("1.5")),
    },
    "anthropic": {
        "claude-3-opus": (Decimal("15"), Decimal("75")),
        "claude-3-sonnet": (Decimal("3"), Decimal("15")),
        "claude-3-haiku": (Decimal("0.25"), Decimal("1.25")),
    },
    "google": {
        "gemini-pro": (Decimal("0.5"), Decimal("1.5")),
    },
}

_ONE_MILLION = Decimal(1_000_000)
_SIX_PLACES = Decimal("0.000001")


def lookup_price(provider: str, model: str) -> Optional[Tuple[Decimal, Decimal]]:
    table = MODEL_PRICING.get((provider or "").lower())
    if not table or not model:
        return None
    model = model.lower()
    if model in table:
        return table[model]
    matches = [name for name in table if model.startswith(name)]
    if not matches:
        return None
    return table[max(matches, key=len)]


def estimate_cost(provider: str, model: str, prompt_tokens: int, completion_tokens: int) -> Decimal:
    """Cost of one call rounded to six decimals. Unknown models cost 0."""
    price = lookup_price(provider, model)
    if price is None:
        return Decimal("0.000000")
    input_price, output_price = price
    cost = (Decimal(prompt_tokens or 0) * input_price + Decimal(completion_tokens or 0) * output_price) / _ONE_MILLION
    return cost.quantize(_SIX_PLACES, rounding=ROUND_HALF_UP)
