import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
import openai

from ..config import EngineConfig, ProviderFamily
from ..domain import FeedbackRequest, Failure, FailureKind, GenerationRequest, GenerationResult, Success
from ..interfaces import TransportClient
from ..prompts import compose_feedback_prompt, compose_story_system_prompt, compose_story_user_prompt
from .availability import AvailabilityCache
from .base import empty_failure, http_failure, timeout_failure, transport_failure


FEEDBACK_SYSTEM_PROMPT = "You are a world-class fiction editor offering constructive critiques."

# Tried after the requested and default models, in this order.
KNOWN_GOOD_MODELS = (
    "gpt-4o-mini",
    "gpt-4o",
    "gpt-4o-mini-2024-07-18",
    "gpt-4o-2024-08-06",
)


def build_candidate_order(preferred: Optional[str], provider_default: str) -> List[str]:
    candidates = [preferred or provider_default, provider_default, *KNOWN_GOOD_MODELS]
    return list(dict.fromkeys(c for c in candidates if c))


def extract_text(data: Dict[str, Any]) -> str:
    """
    Pull text out of a responses payload.

    Accepts a top-level `output_text` list, `output[].text` segments, or
    `response[].content[].text` blocks, in that order of preference.
    """
    output_text = data.get("output_text")
    if isinstance(output_text, list) and output_text:
        return "\n".join(str(t) for t in output_text).strip()
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()
    output = data.get("output")
    if isinstance(output, list) and output:
        merged = "\n".join(
            e["text"] for e in output if isinstance(e, dict) and isinstance(e.get("text"), str) and e["text"]
        ).strip()
        if merged:
            return merged
    response = data.get("response")
    if isinstance(response, list) and response:
        texts = []
        for entry in response:
            for item in (entry or {}).get("content") or []:
                if isinstance(item, dict) and isinstance(item.get("text"), str) and item["text"]:
                    texts.append(item["text"])
        merged = "\n".join(texts).strip()
        if merged:
            return merged
    return ""


def _tokens_used(data: Dict[str, Any]) -> Optional[int]:
    usage = data.get("usage") or {}
    total = usage.get("total_tokens")
    return total if total is not None else usage.get("output_tokens")


def _status_payload(e: openai.APIStatusError) -> Any:
    try:
        return e.response.json()
    except ValueError:
        return e.body


class GPTTransport(TransportClient):
    """
    OpenAI responses exchange.

    The requested model is expanded into a candidate list, filtered through
    the availability cache, and tried in order; only a 404 moves on to the
    next candidate.
    """

    LABEL = "OpenAI"

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        availability: Optional[AvailabilityCache] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.http_client = http_client
        self.availability = availability or AvailabilityCache(self.probe_model, ttl=self.config.availability_ttl)
        self.logger = logging.getLogger(__name__)

    def name(self) -> str:
        return ProviderFamily.OPENAI.value

    def _client(self, api_key: str) -> openai.OpenAI:
        return openai.OpenAI(
            api_key=api_key,
            base_url=self.config.base_url(ProviderFamily.OPENAI),
            max_retries=0,
            timeout=self.config.http_timeout,
            http_client=self.http_client,
        )

    def probe_model(self, api_key: str, model: str) -> bool:
        try:
            self._client(api_key).models.retrieve(model)
        except openai.OpenAIError as e:
            self.logger.debug("openai_probe_unavailable model=%s error=%s", model, e)
            return False
        return True

    def _post(self, api_key: str, body: Dict[str, Any]) -> Any:
        try:
            raw = self._client(api_key).responses.with_raw_response.create(**body)
            return raw.http_response.json()
        except openai.APIStatusError as e:
            failure = http_failure(self.LABEL, e.status_code, _status_payload(e))
            self.logger.info("openai_error status=%s message=%s", e.status_code, failure.message)
            return failure
        except openai.APITimeoutError as e:
            self.logger.warning("openai_timeout model=%s", body["model"])
            return timeout_failure(e)
        except openai.APIConnectionError as e:
            self.logger.warning("openai_transport_error model=%s error=%s", body["model"], e)
            return transport_failure(self.LABEL, e)
        except ValueError:
            return None

    def _generate_with_fallback(
        self,
        api_key: str,
        candidates: List[str],
        build_body: Callable[[str], Dict[str, Any]],
        feedback: bool,
    ) -> GenerationResult:
        available = self.availability.filter_available(api_key, candidates)
        if not available:
            return Failure(
                message="OpenAI models unavailable. This API key does not have access to gpt-4o or gpt-4o-mini.",
                kind=FailureKind.NO_MODEL,
                status=404,
            )
        last: Optional[Failure] = None
        for model in available:
            self.logger.info("openai_request model=%s feedback=%s", model, feedback)
            data = self._post(api_key, build_body(model))
            if isinstance(data, Failure):
                if data.status == 404:
                    last = data
                    continue
                return data
            content = extract_text(data) if isinstance(data, dict) else ""
            if not content:
                return empty_failure(self.LABEL, data, feedback=feedback)
            tokens = _tokens_used(data)
            self.logger.info("openai_ok model=%s tokens=%s len=%s", model, tokens, len(content))
            return Success(content=content, tokens_used=tokens, raw=data, model=model)
        return last or Failure(message="OpenAI returned 404 for all fallback models", status=404)

    def _input(self, system: str, user: str) -> List[Dict[str, Any]]:
        return [
            {"role": "system", "content": [{"type": "text", "text": system}]},
            {"role": "user", "content": [{"type": "text", "text": user}]},
        ]

    def generate_story(self, request: GenerationRequest) -> GenerationResult:
        system = compose_story_system_prompt(request.metadata)
        user = compose_story_user_prompt(request.metadata, request.prompt)
        candidates = build_candidate_order(request.model, request.provider.default_model)
        return self._generate_with_fallback(
            request.api_key,
            candidates,
            lambda model: {
                "model": model,
                "max_output_tokens": request.max_output_tokens or 1400,
                "temperature": request.temperature if request.temperature is not None else 0.7,
                "input": self._input(system, user),
            },
            feedback=False,
        )

    def request_feedback(self, request: FeedbackRequest) -> GenerationResult:
        prompt = compose_feedback_prompt(request.metadata, request.draft, request.instruction)
        candidates = build_candidate_order(request.model, request.provider.default_model)
        return self._generate_with_fallback(
            request.api_key,
            candidates,
            lambda model: {
                "model": model,
                "max_output_tokens": 900,
                "temperature": 0.4,
                "input": self._input(FEEDBACK_SYSTEM_PROMPT, prompt),
            },
            feedback=True,
        )
