from typing import Dict, Optional

from ..config import EngineConfig, ProviderFamily
from ..interfaces import TransportClient
from .availability import AvailabilityCache
from .claude import ClaudeTransport
from .deepseek import DeepSeekTransport
from .gemini import GeminiTransport
from .gpt import GPTTransport


def default_transports(
    config: Optional[EngineConfig] = None,
    availability: Optional[AvailabilityCache] = None,
) -> Dict[ProviderFamily, TransportClient]:
    """One transport per provider family, sharing `config`."""
    config = config or EngineConfig()
    return {
        ProviderFamily.OPENAI: GPTTransport(config, availability=availability),
        ProviderFamily.ANTHROPIC: ClaudeTransport(config),
        ProviderFamily.GEMINI: GeminiTransport(config),
        ProviderFamily.DEEPSEEK: DeepSeekTransport(config),
    }


__all__ = [
    "AvailabilityCache",
    "ClaudeTransport",
    "DeepSeekTransport",
    "GeminiTransport",
    "GPTTransport",
    "default_transports",
]
