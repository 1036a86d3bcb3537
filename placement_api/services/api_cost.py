"""
Token pricing for the generation models in use
"""
from typing import Dict

# USD per 1,000 tokens
MODEL_PRICING: Dict[str, Dict[str, float]] = {
    "gemini-2.5-pro": {"input": 0.00125, "output": 0.01, "cached_input": 0.00031},
    "gemini-2.5-flash": {"input": 0.0003, "output": 0.0025, "cached_input": 0.000075},
    "gemini-2.5-flash-lite": {"input": 0.0001, "output": 0.0004, "cached_input": 0.000025},
}


def calculate_api_cost(
    model: str,
    tokens_input: int = 0,
    tokens_output: int = 0,
    cached: bool = False
) -> float:
    """
    Cost in USD for one call, rounded to 5 decimal places

    The cached-input rate applies when the provider reported a cache hit and
    the model has one. Unknown models cost 0 rather than failing the caller.
    """
    if not model:
        return 0.0

    pricing = MODEL_PRICING.get(model.lower())
    if not pricing:
        return 0.0

    input_rate = pricing["input"]
    if cached and pricing.get("cached_input") is not None:
        input_rate = pricing["cached_input"]

    cost = (tokens_input / 1000) * input_rate + (tokens_output / 1000) * pricing["output"]
    return round(cost, 5)
