import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from ..config import EngineConfig, ProviderFamily
from ..domain import FeedbackRequest, Failure, GenerationRequest, GenerationResult, Success
from ..interfaces import TransportClient
from ..prompts import compose_feedback_prompt, compose_story_system_prompt, compose_story_user_prompt
from .base import empty_failure, post_json


FEEDBACK_SYSTEM_PROMPT = "You are an expert fiction editor offering constructive feedback."

# Short-hand model names and the concrete ids to try after them, in order.
MODEL_ALIASES = (
    (re.compile(r"^gemini-1\.5-flash$"), ("gemini-1.5-flash-001",)),
    (re.compile(r"^gemini-1\.5-flash-8b$"), ("gemini-1.5-flash-8b-001",)),
    (re.compile(r"^gemini-1\.5-pro$"), ("gemini-1.5-pro-001",)),
    (re.compile(r"^gemini-pro$"), ("gemini-1.5-pro", "gemini-1.5-pro-001")),
)


def model_fallbacks(model: str) -> List[str]:
    candidates = [model]
    for pattern, aliases in MODEL_ALIASES:
        if pattern.match(model):
            candidates.extend(aliases)
    return list(dict.fromkeys(candidates))


def extract_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return ""
    parts = (candidates[0].get("content") or {}).get("parts")
    if not isinstance(parts, list):
        return ""
    texts = [p.get("text") for p in parts if isinstance(p, dict) and p.get("text")]
    return "\n".join(texts).strip()


def _is_not_found(failure: Failure) -> bool:
    return failure.status == 404 or "not found" in failure.message.lower()


class GeminiTransport(TransportClient):
    """
    generateContent exchange with the model embedded in the URL path and the
    key passed as a query parameter.

    Short-hand model names are expanded to known concrete ids and tried in
    order; only a "not found" failure moves on to the next candidate.
    """

    LABEL = "Gemini"

    def __init__(self, config: Optional[EngineConfig] = None, http: Any = None) -> None:
        self.config = config or EngineConfig()
        self.http = http or requests
        self.logger = logging.getLogger(__name__)

    def name(self) -> str:
        return ProviderFamily.GEMINI.value

    def endpoint(self, model: str, api_key: str) -> str:
        base = self.config.base_url(ProviderFamily.GEMINI).rstrip("/")
        return f"{base}/v1/models/{model}:generateContent?key={quote(api_key, safe='')}"

    def _generate(self, model: str, api_key: str, body: Dict[str, Any], feedback: bool) -> GenerationResult:
        candidates = model_fallbacks(model)
        result: GenerationResult = Failure(message="Gemini request was not attempted")
        for index, candidate in enumerate(candidates):
            self.logger.info("gemini_request model=%s feedback=%s", candidate, feedback)
            result = self._attempt(candidate, api_key, body, feedback)
            if isinstance(result, Success):
                return result
            if not _is_not_found(result) or index == len(candidates) - 1:
                return result
            self.logger.info("gemini_model_not_found model=%s next=%s", candidate, candidates[index + 1])
        return result

    def _attempt(self, model: str, api_key: str, body: Dict[str, Any], feedback: bool) -> GenerationResult:
        headers = {"Content-Type": "application/json"}
        data = post_json(self.http, self.endpoint(model, api_key), headers, body, self.LABEL, self.config.http_timeout)
        if isinstance(data, Failure):
            return data
        text = extract_text(data)
        if not text:
            return empty_failure(self.LABEL, data, feedback=feedback)
        usage = data.get("usageMetadata") or {}
        tokens = usage.get("totalTokenCount")
        self.logger.info("gemini_ok model=%s tokens=%s len=%s", model, tokens, len(text))
        return Success(content=text, tokens_used=tokens, raw=data, model=model)

    def _body(self, text: str, temperature: float, max_tokens: int) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": text}]}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }

    def generate_story(self, request: GenerationRequest) -> GenerationResult:
        text = (
            compose_story_system_prompt(request.metadata)
            + "\n\n"
            + compose_story_user_prompt(request.metadata, request.prompt)
        )
        body = self._body(
            text,
            request.temperature if request.temperature is not None else 0.75,
            request.max_output_tokens or 1400,
        )
        model = request.model or request.provider.default_model
        return self._generate(model, request.api_key, body, feedback=False)

    def request_feedback(self, request: FeedbackRequest) -> GenerationResult:
        text = (
            FEEDBACK_SYSTEM_PROMPT
            + "\n\n"
            + compose_feedback_prompt(request.metadata, request.draft, request.instruction)
        )
        body = self._body(text, 0.35, 900)
        model = request.model or request.provider.default_model
        return self._generate(model, request.api_key, body, feedback=True)
