import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


logger = logging.getLogger(__name__)


class ProviderFamily(str, Enum):
    """Wire-protocol families with a built-in transport."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"


@dataclass(frozen=True)
class ProviderDescriptor:
    """
    Static description of a provider exposed to authors.

    - id: stable key used in requests and cost tables (e.g. "openai")
    - label: human-friendly name for UI display and error messages
    - models: supported model ids, in display order
    - family: transport family, or None for custom providers
    """
    id: str
    label: str
    models: Tuple[str, ...]
    default_model: str
    docs_url: str
    family: Optional[ProviderFamily] = None

    @property
    def is_custom(self) -> bool:
        return self.family is None


# ---------------------------------------------------------------------------
# Provider / model configuration
# ---------------------------------------------------------------------------


# Central registry of the providers and model versions we expose. Keeping it
# here makes it trivial to add/remove models without touching the transports.
BUILTIN_PROVIDERS: Tuple[ProviderDescriptor, ...] = (
    ProviderDescriptor(
        id="openai",
        label="OpenAI",
        models=("gpt-4o-mini", "gpt-4o"),
        default_model="gpt-4o-mini",
        docs_url="https://platform.openai.com/docs",
        family=ProviderFamily.OPENAI,
    ),
    ProviderDescriptor(
        id="anthropic",
        label="Anthropic Claude",
        models=(
            "claude-3-5-haiku-latest",
            "claude-3-5-sonnet",
            "claude-3-5-opus",
            "claude-3-opus",
            "claude-3-haiku",
        ),
        default_model="claude-3-5-haiku-latest",
        docs_url="https://docs.anthropic.com",
        family=ProviderFamily.ANTHROPIC,
    ),
    ProviderDescriptor(
        id="gemini",
        label="Google Gemini",
        models=(
            "gemini-1.5-flash-001",
            "gemini-1.5-flash",
            "gemini-1.5-flash-8b",
            "gemini-1.5-flash-8b-001",
            "gemini-1.5-pro-001",
            "gemini-1.5-pro",
            "gemini-1.5-pro-exp",
        ),
        default_model="gemini-1.5-flash-001",
        docs_url="https://ai.google.dev/gemini-api/docs",
        family=ProviderFamily.GEMINI,
    ),
    ProviderDescriptor(
        id="deepseek",
        label="DeepSeek",
        models=("deepseek-chat", "deepseek-reasoner", "deepseek-coder", "deepseek-math"),
        default_model="deepseek-chat",
        docs_url="https://api-docs.deepseek.com/",
        family=ProviderFamily.DEEPSEEK,
    ),
)


@dataclass(frozen=True)
class CostRate:
    """USD per 1K tokens."""
    input: float
    output: float


PROVIDER_COST_RATES: Dict[str, CostRate] = {
    "openai": CostRate(input=0.00015, output=0.0006),
    "anthropic": CostRate(input=0.0008, output=0.003),
    "gemini": CostRate(input=0.000125, output=0.000375),
    "deepseek": CostRate(input=0.0002, output=0.0004),
    "default": CostRate(input=0.0002, output=0.0006),
}


DEFAULT_BASE_URLS: Dict[ProviderFamily, str] = {
    ProviderFamily.OPENAI: "https://api.openai.com/v1",
    ProviderFamily.ANTHROPIC: "https://api.anthropic.com",
    ProviderFamily.GEMINI: "https://generativelanguage.googleapis.com",
    ProviderFamily.DEEPSEEK: "https://api.deepseek.com/chat/completions",
}


@dataclass
class EngineConfig:
    """
    Runtime knobs for the orchestrator and transports.

    request_timeout bounds a whole orchestrated call (including the single
    fallback retry); http_timeout bounds each individual HTTP exchange.
    """
    request_timeout: float = 60.0
    http_timeout: float = 60.0
    availability_ttl: float = 60 * 60
    model_error_markers: Tuple[str, ...] = ("model", "does not exist")
    base_urls: Dict[ProviderFamily, str] = field(default_factory=lambda: dict(DEFAULT_BASE_URLS))

    def base_url(self, family: ProviderFamily) -> str:
        return self.base_urls.get(family) or DEFAULT_BASE_URLS[family]

    @classmethod
    def from_env(cls) -> "EngineConfig":
        cfg = cls()
        timeout = os.environ.get("DREAMSCRIBE_REQUEST_TIMEOUT", "").strip()
        if timeout:
            try:
                cfg.request_timeout = float(timeout)
            except ValueError:
                logger.warning("invalid_request_timeout value=%s", timeout)
        for family in ProviderFamily:
            override = os.environ.get(f"DREAMSCRIBE_{family.name}_BASE_URL", "").strip()
            if override:
                cfg.base_urls[family] = override.rstrip("/")
                logger.info("base_url_override family=%s url=%s", family.value, cfg.base_urls[family])
        return cfg


_ENV_KEY_NAMES: Dict[str, Tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY", "GOOGLE_GEMINI_API_KEY"),
    "deepseek": ("DEEPSEEK_API_KEY", "DEEPSEEK_KEY", "API_KEY_DEEPSEEK"),
}


def load_api_keys(keys_file: Optional[str] = None) -> Dict[str, str]:
    """
    Collect credentials per provider id.

    Values from the JSON keys file win; anything missing falls back to the
    usual environment variables. Blank values are dropped.
    """
    keys: Dict[str, str] = {}
    file_keys: Dict[str, str] = {}
    if keys_file:
        try:
            with open(keys_file, "r", encoding="utf-8") as f:
                file_keys = json.load(f)
            logger.info("keys_file_loaded path=%s", keys_file)
        except (OSError, ValueError) as e:
            logger.warning("keys_file_error path=%s error=%s", keys_file, e)
    for provider_id, env_names in _ENV_KEY_NAMES.items():
        value = (
            file_keys.get(f"{provider_id}_api_key")
            or file_keys.get(f"{provider_id.upper()}_API_KEY")
        )
        if not value:
            for env_name in env_names:
                value = os.environ.get(env_name)
                if value:
                    break
        value = (value or "").strip()
        if value:
            keys[provider_id] = value
    logger.debug("api_keys_resolved providers=%s", sorted(keys))
    return keys
