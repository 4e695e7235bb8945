"""Model pricing information."""

from __future__ import annotations

# Pricing per 1 million tokens: (input_price, output_price)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    # OpenAI models
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4-turbo": (10.00, 30.00),
    "gpt-4.1": (2.00, 8.00),
    "gpt-4.1-mini": (0.40, 1.60),
    "gpt-4": (30.00, 60.00),
    "gpt-3.5-turbo": (1.50, 2.00),
    # Anthropic models
    "claude-3-5-sonnet": (3.00, 15.00),
    "claude-3-opus": (15.00, 75.00),
    "claude-3-haiku": (0.25, 1.25),
}

# Unknown models are billed as gpt-4
DEFAULT_MODEL = "gpt-4"

# Only total token counts are reported back; split them 70/30
INPUT_TOKEN_SHARE = 0.7
OUTPUT_TOKEN_SHARE = 0.3


def get_model_pricing(model: str | None) -> tuple[float, float]:
    """Get pricing for a model.

    Args:
        model: Model name or ID.

    Returns:
        Tuple of (input_price, output_price) per 1M tokens.
    """
    if not model:
        return MODEL_PRICING[DEFAULT_MODEL]

    if model in MODEL_PRICING:
        return MODEL_PRICING[model]

    # Longest prefix wins so "gpt-4o-mini-2024-07-18" is not priced as "gpt-4"
    model_lower = model.lower()
    matches = [known for known in MODEL_PRICING if model_lower.startswith(known.lower())]
    if matches:
        return MODEL_PRICING[max(matches, key=len)]

    return MODEL_PRICING[DEFAULT_MODEL]


def calculate_cost(tokens_used: int, model: str | None = DEFAULT_MODEL) -> float:
    """Calculate USD cost from a total token count.

    Args:
        tokens_used: Total tokens reported by the provider.
        model: Model name.

    Returns:
        Cost in USD.
    """
    input_price, output_price = get_model_pricing(model)
    input_tokens = tokens_used * INPUT_TOKEN_SHARE
    output_tokens = tokens_used * OUTPUT_TOKEN_SHARE
    return (input_tokens / 1_000_000) * input_price + (output_tokens / 1_000_000) * output_price
