import math

from .config import PROVIDER_COST_RATES
from .domain import StoryMetadata


TOKENS_BY_LENGTH = {
    "short": 900,
    "medium": 1500,
    "long": 2200,
}
DEFAULT_TOKEN_BUDGET = 1400


def tokens_for(metadata: StoryMetadata) -> int:
    """Token budget for a generation: the explicit override, else a per-length default."""
    target = metadata.target_tokens
    if isinstance(target, (int, float)) and math.isfinite(target) and target > 0:
        return int(math.floor(target))
    return TOKENS_BY_LENGTH.get(metadata.target_length, DEFAULT_TOKEN_BUDGET)


def estimate_generation_cost(provider_id: str, tokens: int) -> float:
    key = "default" if provider_id.startswith("custom") else provider_id
    rates = PROVIDER_COST_RATES.get(key) or PROVIDER_COST_RATES["default"]
    total = (tokens / 1000) * (rates.input + rates.output)
    return round(total, 3)
