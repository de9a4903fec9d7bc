import logging
from typing import Any, Dict, Optional

import anthropic
import httpx

from ..config import EngineConfig, ProviderFamily
from ..domain import FeedbackRequest, GenerationRequest, GenerationResult, Success
from ..interfaces import TransportClient
from ..prompts import compose_feedback_prompt, compose_story_system_prompt, compose_story_user_prompt
from .base import empty_failure, http_failure, timeout_failure, transport_failure


FEEDBACK_SYSTEM_PROMPT = "You are a precise, encouraging fiction editor."


def _status_payload(e: anthropic.APIStatusError) -> Any:
    try:
        return e.response.json()
    except ValueError:
        return e.body


class ClaudeTransport(TransportClient):
    """
    Anthropic messages exchange.

    The SDK supplies the `x-api-key` and `anthropic-version` headers; SDK
    retries are disabled so every call is exactly one HTTP exchange.
    """

    LABEL = "Anthropic"

    def __init__(self, config: Optional[EngineConfig] = None, http_client: Optional[httpx.Client] = None) -> None:
        self.config = config or EngineConfig()
        self.http_client = http_client
        self.logger = logging.getLogger(__name__)

    def name(self) -> str:
        return ProviderFamily.ANTHROPIC.value

    def _client(self, api_key: str) -> anthropic.Anthropic:
        return anthropic.Anthropic(
            api_key=api_key,
            base_url=self.config.base_url(ProviderFamily.ANTHROPIC),
            max_retries=0,
            timeout=self.config.http_timeout,
            http_client=self.http_client,
        )

    def _create(self, api_key: str, body: Dict[str, Any], feedback: bool) -> GenerationResult:
        self.logger.info("anthropic_request model=%s feedback=%s", body["model"], feedback)
        try:
            raw = self._client(api_key).messages.with_raw_response.create(**body)
            data = raw.http_response.json()
        except anthropic.APIStatusError as e:
            failure = http_failure(self.LABEL, e.status_code, _status_payload(e))
            self.logger.info("anthropic_error status=%s message=%s", e.status_code, failure.message)
            return failure
        except anthropic.APITimeoutError as e:
            self.logger.warning("anthropic_timeout model=%s", body["model"])
            return timeout_failure(e)
        except anthropic.APIConnectionError as e:
            self.logger.warning("anthropic_transport_error model=%s error=%s", body["model"], e)
            return transport_failure(self.LABEL, e)
        except ValueError:
            return empty_failure(self.LABEL, None, feedback=feedback)

        blocks = data.get("content") if isinstance(data, dict) else None
        first = blocks[0] if isinstance(blocks, list) and blocks else {}
        text = (first.get("text") or "").strip() if isinstance(first, dict) else ""
        if not text:
            return empty_failure(self.LABEL, data, feedback=feedback)
        tokens = (data.get("usage") or {}).get("output_tokens")
        self.logger.info("anthropic_ok model=%s tokens=%s len=%s", body["model"], tokens, len(text))
        return Success(content=text, tokens_used=tokens, raw=data, model=body["model"])

    def generate_story(self, request: GenerationRequest) -> GenerationResult:
        body = {
            "model": request.model or request.provider.default_model,
            "max_tokens": request.max_output_tokens or 1500,
            "temperature": request.temperature if request.temperature is not None else 0.7,
            "system": compose_story_system_prompt(request.metadata),
            "messages": [
                {
                    "role": "user",
                    "content": [{"type": "text", "text": compose_story_user_prompt(request.metadata, request.prompt)}],
                },
            ],
        }
        return self._create(request.api_key, body, feedback=False)

    def request_feedback(self, request: FeedbackRequest) -> GenerationResult:
        prompt = compose_feedback_prompt(request.metadata, request.draft, request.instruction)
        body = {
            "model": request.model or request.provider.default_model,
            "max_tokens": 900,
            "temperature": 0.3,
            "system": FEEDBACK_SYSTEM_PROMPT,
            "messages": [
                {"role": "user", "content": [{"type": "text", "text": prompt}]},
            ],
        }
        return self._create(request.api_key, body, feedback=True)
