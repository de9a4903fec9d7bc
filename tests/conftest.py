"""Shared pytest fixtures for dreamscribe_engine tests.

Fixtures are organized by category:
- Catalog fixtures: built-in provider descriptors
- Request fixtures: story metadata and generation requests
- Transport fixtures: scripted in-memory transports and HTTP doubles
"""

import json
import threading
import time
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

import httpx
import pytest

from dreamscribe_engine.catalog import ProviderCatalog
from dreamscribe_engine.config import EngineConfig, ProviderDescriptor, ProviderFamily
from dreamscribe_engine.domain import (
    FeedbackRequest,
    GenerationRequest,
    GenerationResult,
    StoryMetadata,
)
from dreamscribe_engine.interfaces import TransportClient


# =============================================================================
# Catalog Fixtures
# =============================================================================


@pytest.fixture
def catalog() -> ProviderCatalog:
    return ProviderCatalog()


@pytest.fixture
def openai_provider(catalog: ProviderCatalog) -> ProviderDescriptor:
    return catalog.get("openai")


@pytest.fixture
def anthropic_provider(catalog: ProviderCatalog) -> ProviderDescriptor:
    return catalog.get("anthropic")


@pytest.fixture
def gemini_provider(catalog: ProviderCatalog) -> ProviderDescriptor:
    return catalog.get("gemini")


@pytest.fixture
def deepseek_provider(catalog: ProviderCatalog) -> ProviderDescriptor:
    return catalog.get("deepseek")


# =============================================================================
# Request Fixtures
# =============================================================================


@pytest.fixture
def metadata() -> StoryMetadata:
    return StoryMetadata(
        title="The Lighthouse",
        genre="Mystery",
        tone="Melancholic",
        perspective="First person",
        target_length="short",
    )


@pytest.fixture
def make_request(metadata: StoryMetadata) -> Callable[..., GenerationRequest]:
    def _make(provider: ProviderDescriptor, **overrides: Any) -> GenerationRequest:
        fields: Dict[str, Any] = {
            "provider": provider,
            "api_key": "sk-test",
            "metadata": metadata,
            "prompt": "A lighthouse keeper finds a message in a bottle",
        }
        fields.update(overrides)
        return GenerationRequest(**fields)

    return _make


@pytest.fixture
def make_feedback(metadata: StoryMetadata) -> Callable[..., FeedbackRequest]:
    def _make(provider: ProviderDescriptor, **overrides: Any) -> FeedbackRequest:
        fields: Dict[str, Any] = {
            "provider": provider,
            "api_key": "sk-test",
            "metadata": metadata,
            "draft": "The lamp went dark at midnight.",
            "instruction": "Tighten the dialogue.",
            "focus": "dialogue",
        }
        fields.update(overrides)
        return FeedbackRequest(**fields)

    return _make


# =============================================================================
# Transport Fixtures
# =============================================================================


class ScriptedTransport(TransportClient):
    """In-memory transport returning queued results and recording each call.

    `script` may be a list of results (consumed in order, the last one
    repeats) or a callable taking the request. `delay` sleeps before
    answering; `gate` blocks until the event is set.
    """

    def __init__(
        self,
        family: ProviderFamily,
        script: Any,
        delay: float = 0.0,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.family = family
        self.script = script
        self.delay = delay
        self.gate = gate
        self.calls: List[Any] = []
        self._lock = threading.Lock()

    def name(self) -> str:
        return self.family.value

    def _answer(self, request: Any) -> GenerationResult:
        with self._lock:
            self.calls.append(request)
            index = len(self.calls) - 1
        if self.gate is not None:
            self.gate.wait(5)
        if self.delay:
            time.sleep(self.delay)
        if callable(self.script):
            return self.script(request)
        return self.script[min(index, len(self.script) - 1)]

    def generate_story(self, request: GenerationRequest) -> GenerationResult:
        return self._answer(request)

    def request_feedback(self, request: FeedbackRequest) -> GenerationResult:
        return self._answer(request)


@pytest.fixture
def scripted() -> Callable[..., ScriptedTransport]:
    return ScriptedTransport


@pytest.fixture
def fast_config() -> EngineConfig:
    return EngineConfig(request_timeout=2.0, http_timeout=2.0)


def http_response(status: int, payload: Any = None, text: Optional[str] = None) -> MagicMock:
    """A stand-in for `requests.Response`."""
    resp = MagicMock()
    resp.status_code = status
    if text is not None:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def make_http_response() -> Callable[..., MagicMock]:
    return http_response


class RecordingHandler:
    """httpx.MockTransport handler answering from a route table.

    Routes map (method, path) to a callable or a static httpx.Response.
    Every request is recorded with its decoded JSON body.
    """

    def __init__(self, routes: Dict[Any, Any]) -> None:
        self.routes = routes
        self.requests: List[httpx.Request] = []
        self.bodies: List[Any] = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            self.bodies.append(json.loads(request.content) if request.content else None)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": {"message": f"no route for {request.url.path}"}})
        if callable(route):
            return route(request)
        return route

    def calls_to(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def mock_http() -> Callable[[Dict[Any, Any]], Any]:
    """Build (handler, httpx.Client) for injecting into SDK-backed transports."""

    def _build(routes: Dict[Any, Any]):
        handler = RecordingHandler(routes)
        return handler, httpx.Client(transport=httpx.MockTransport(handler))

    return _build
