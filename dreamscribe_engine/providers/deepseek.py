import logging
from typing import Any, Dict, List, Optional

import requests

from ..config import EngineConfig, ProviderFamily
from ..domain import FeedbackRequest, Failure, GenerationRequest, GenerationResult, Success
from ..interfaces import TransportClient
from ..prompts import compose_feedback_prompt, compose_story_system_prompt, compose_story_user_prompt
from .base import empty_failure, post_json


FEEDBACK_SYSTEM_PROMPT = "You are a careful fiction editor."


def _first_numeric(val: Any) -> Optional[int]:
    if isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        return int(val)
    if isinstance(val, str):
        try:
            return int(float(val))
        except ValueError:
            return None
    return None


class DeepSeekTransport(TransportClient):
    """Chat-completions exchange: bearer auth, system + user messages."""

    LABEL = "DeepSeek"

    def __init__(self, config: Optional[EngineConfig] = None, http: Any = None) -> None:
        self.config = config or EngineConfig()
        self.http = http or requests
        self.logger = logging.getLogger(__name__)

    def name(self) -> str:
        return ProviderFamily.DEEPSEEK.value

    @property
    def url(self) -> str:
        return self.config.base_url(ProviderFamily.DEEPSEEK)

    def _complete(self, api_key: str, body: Dict[str, Any], feedback: bool) -> GenerationResult:
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        self.logger.info("deepseek_request model=%s feedback=%s", body["model"], feedback)
        data = post_json(self.http, self.url, headers, body, self.LABEL, self.config.http_timeout)
        if isinstance(data, Failure):
            return data
        choices = data.get("choices") or [{}]
        message = (choices[0] or {}).get("message") or {}
        content = (message.get("content") or "").strip()
        if not content:
            return empty_failure(self.LABEL, data, feedback=feedback)
        tokens = _first_numeric((data.get("usage") or {}).get("total_tokens"))
        self.logger.info("deepseek_ok model=%s tokens=%s len=%s", body["model"], tokens, len(content))
        return Success(content=content, tokens_used=tokens, raw=data, model=body["model"])

    def _messages(self, system: str, user: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    def generate_story(self, request: GenerationRequest) -> GenerationResult:
        body = {
            "model": request.model or request.provider.default_model,
            "temperature": request.temperature if request.temperature is not None else 0.65,
            "max_tokens": request.max_output_tokens or 1400,
            "messages": self._messages(
                compose_story_system_prompt(request.metadata),
                compose_story_user_prompt(request.metadata, request.prompt),
            ),
        }
        return self._complete(request.api_key, body, feedback=False)

    def request_feedback(self, request: FeedbackRequest) -> GenerationResult:
        body = {
            "model": request.model or request.provider.default_model,
            "temperature": 0.4,
            "max_tokens": 900,
            "messages": self._messages(
                FEEDBACK_SYSTEM_PROMPT,
                compose_feedback_prompt(request.metadata, request.draft, request.instruction),
            ),
        }
        return self._complete(request.api_key, body, feedback=True)
