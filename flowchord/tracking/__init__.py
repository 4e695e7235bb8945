"""Cost tracking for FlowChord."""

from flowchord.tracking.pricing import MODEL_PRICING, calculate_cost, get_model_pricing

__all__ = [
    "MODEL_PRICING",
    "calculate_cost",
    "get_model_pricing",
]
