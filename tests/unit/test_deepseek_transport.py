"""Tests for the DeepSeek chat-completions transport."""

from unittest.mock import MagicMock

import pytest
import requests

from dreamscribe_engine.config import EngineConfig
from dreamscribe_engine.domain import FailureKind, Success
from dreamscribe_engine.providers.deepseek import DeepSeekTransport


@pytest.fixture
def http() -> MagicMock:
    return MagicMock()


@pytest.fixture
def transport(http: MagicMock) -> DeepSeekTransport:
    return DeepSeekTransport(EngineConfig(http_timeout=5), http=http)


class TestDeepSeekGenerateStory:
    def test_posts_chat_completion(self, transport, http, make_request, deepseek_provider, make_http_response) -> None:
        http.post.return_value = make_http_response(
            200,
            {"choices": [{"message": {"content": "  The tide turned.  "}}], "usage": {"total_tokens": 321}},
        )

        result = transport.generate_story(make_request(deepseek_provider, model="deepseek-reasoner"))

        assert isinstance(result, Success)
        assert result.content == "The tide turned."
        assert result.tokens_used == 321
        args, kwargs = http.post.call_args
        assert args[0] == "https://api.deepseek.com/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["timeout"] == 5
        body = kwargs["json"]
        assert body["model"] == "deepseek-reasoner"
        assert body["temperature"] == 0.65
        assert body["max_tokens"] == 1400
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert "A lighthouse keeper" in body["messages"][1]["content"]

    def test_request_overrides(self, transport, http, make_request, deepseek_provider, make_http_response) -> None:
        http.post.return_value = make_http_response(200, {"choices": [{"message": {"content": "ok"}}]})

        transport.generate_story(make_request(deepseek_provider, temperature=0.0, max_output_tokens=300))

        body = http.post.call_args.kwargs["json"]
        assert body["model"] == "deepseek-chat"
        assert body["temperature"] == 0.0
        assert body["max_tokens"] == 300

    def test_http_error_embeds_status_and_detail(self, transport, http, make_request, deepseek_provider, make_http_response) -> None:
        payload = {"error": {"message": " Insufficient Balance "}}
        http.post.return_value = make_http_response(402, payload)

        result = transport.generate_story(make_request(deepseek_provider))

        assert result.kind is FailureKind.HTTP
        assert result.message == "DeepSeek error (402): Insufficient Balance"
        assert result.status == 402
        assert result.payload == payload

    def test_http_error_without_json(self, transport, http, make_request, deepseek_provider, make_http_response) -> None:
        http.post.return_value = make_http_response(502, text="<html>bad gateway</html>")

        result = transport.generate_story(make_request(deepseek_provider))

        assert result.message == "DeepSeek error (502)"
        assert result.payload is None

    def test_empty_content(self, transport, http, make_request, deepseek_provider, make_http_response) -> None:
        payload = {"choices": [{"message": {"content": "   "}}]}
        http.post.return_value = make_http_response(200, payload)

        result = transport.generate_story(make_request(deepseek_provider))

        assert result.kind is FailureKind.EMPTY_RESPONSE
        assert result.message == "DeepSeek returned an empty response"
        assert result.payload == payload

    def test_connection_failure_mentions_connectivity(self, transport, http, make_request, deepseek_provider) -> None:
        http.post.side_effect = requests.ConnectionError("Name or service not known")

        result = transport.generate_story(make_request(deepseek_provider))

        assert result.kind is FailureKind.TRANSPORT
        assert result.status is None
        assert "before reaching the API" in result.message
        assert "proxy" in result.message
        assert "DREAMSCRIBE_DEEPSEEK_BASE_URL" in result.message
        assert "Name or service not known" in result.payload["cause"]

    def test_read_timeout(self, transport, http, make_request, deepseek_provider) -> None:
        http.post.side_effect = requests.ReadTimeout("slow")

        result = transport.generate_story(make_request(deepseek_provider))

        assert result.kind is FailureKind.TIMEOUT
        assert result.message == "Request timed out"


class TestDeepSeekFeedback:
    def test_feedback_body(self, transport, http, make_feedback, deepseek_provider, make_http_response) -> None:
        http.post.return_value = make_http_response(200, {"choices": [{"message": {"content": "Cut line 2."}}]})

        result = transport.request_feedback(make_feedback(deepseek_provider))

        assert result.content == "Cut line 2."
        body = http.post.call_args.kwargs["json"]
        assert body["temperature"] == 0.4
        assert body["max_tokens"] == 900
        assert body["messages"][0] == {"role": "system", "content": "You are a careful fiction editor."}
        assert "Tighten the dialogue." in body["messages"][1]["content"]

    def test_empty_feedback_message(self, transport, http, make_feedback, deepseek_provider, make_http_response) -> None:
        http.post.return_value = make_http_response(200, {"choices": []})

        result = transport.request_feedback(make_feedback(deepseek_provider))

        assert result.message == "DeepSeek returned an empty feedback response"
