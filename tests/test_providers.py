"""Tests for the Anthropic, Google, xAI, Krutrim and OpenRouter adapters."""

import json

import httpx
import pytest

from shared.llm_adapter.anthropic_provider import AnthropicAdapter, alternate_turns, image_block
from shared.llm_adapter.errors import ProviderError, ResponseShapeError, UpstreamHTTPError
from shared.llm_adapter.google_provider import GoogleAdapter, endpoint_for, resolve_model
from shared.llm_adapter.krutrim_provider import KrutrimAdapter, split_reasoning
from shared.llm_adapter.models import Attachment, ChatMessage
from shared.llm_adapter.openrouter_provider import (
    DEFAULT_MODEL,
    REASONING_ONLY_PLACEHOLDER,
    OpenRouterAdapter,
    extra_parameters,
    map_model_id,
    max_tokens_for,
)
from shared.llm_adapter.xai_provider import XAIAdapter
from shared.llm_adapter.xai_provider import resolve_model as resolve_grok


def history(*pairs):
    return [ChatMessage(role=r, content=c) for r, c in pairs]


class TestAnthropic:

    def test_alternation_merges_and_drops_leading_assistant(self):
        turns = alternate_turns(history(("assistant", "x"), ("user", "a"), ("user", "b"), ("assistant", "c")))
        assert turns == [
            {"role": "user", "content": "a\n\nb"},
            {"role": "assistant", "content": "c"},
        ]

    def test_image_blocks(self):
        assert image_block("https://img.example/cat.png")["source"] == {
            "type": "url",
            "url": "https://img.example/cat.png",
        }
        assert image_block("data:image/jpeg;base64,QUJD")["source"] == {
            "type": "base64",
            "media_type": "image/jpeg",
            "data": "QUJD",
        }
        assert image_block("not an image") is None

    async def test_request_shape_and_envelope(self, mock_http, make_request, make_model):
        captured = {}

        def handler(request):
            captured["headers"] = request.headers
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "content": [
                    {"type": "thinking", "thinking": "considering"},
                    {"type": "text", "text": "Hello!"},
                ],
                "usage": {"input_tokens": 7, "output_tokens": 3},
            })

        adapter = AnthropicAdapter("ak-test", mock_http(handler))
        envelope = await adapter.handle(make_request(
            "And now?",
            model=make_model("claude-3-5-sonnet-20241022", provider="anthropic"),
            history=history(("user", "a"), ("assistant", "c"), ("user", "d")),
        ))

        body = captured["body"]
        assert body["system"] == "You are Krix."
        assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]
        assert body["messages"][-1]["content"][0] == {"type": "text", "text": "d"}
        assert body["messages"][-1]["content"][1] == {"type": "text", "text": "And now?"}
        assert captured["headers"]["x-api-key"] == "ak-test"
        assert captured["headers"]["anthropic-version"] == "2023-06-01"
        assert envelope.content == "Hello!"
        assert envelope.reasoning_content == "considering"
        assert (envelope.tokens.input, envelope.tokens.output) == (7, 3)
        assert envelope.provider == "Anthropic"

    async def test_error_body(self, mock_http, make_request):
        def handler(request):
            return httpx.Response(529, json={"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})

        adapter = AnthropicAdapter("ak-test", mock_http(handler))
        with pytest.raises(UpstreamHTTPError, match="Anthropic API error: 529 - Overloaded"):
            await adapter.handle(make_request())


class TestGoogle:

    def test_alias_and_endpoint(self):
        assert resolve_model("gemini-2.0-flash") == "gemini-2.0-flash-001"
        assert resolve_model("custom-model") == "custom-model"
        assert "/v1beta/" in endpoint_for("gemini-2.0-flash-001")
        assert "/v1/" in endpoint_for("gemini-1.0-pro")

    async def test_contents_and_inline_images(self, mock_http, make_request, make_model):
        captured = {}

        def handler(request):
            captured["url"] = request.url
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": "Bonjour"}]}}],
                "usageMetadata": {"promptTokenCount": 9, "candidatesTokenCount": 2},
            })

        adapter = GoogleAdapter("gk-test", mock_http(handler))
        envelope = await adapter.handle(make_request(
            "Translate hello",
            model=make_model("gemini-2.0-flash", provider="google"),
            history=history(("user", "hi"), ("assistant", "hello")),
            images=["data:image/png;base64,AAAA", "https://img.example/skip.png"],
        ))

        assert captured["url"].path == "/v1beta/models/gemini-2.0-flash-001:generateContent"
        assert captured["url"].params["key"] == "gk-test"
        contents = captured["body"]["contents"]
        assert contents[0]["parts"][0]["text"] == "System: You are Krix."
        assert [c["role"] for c in contents] == ["user", "user", "model", "user"]
        assert contents[-1]["parts"][1] == {"inline_data": {"mime_type": "image/png", "data": "AAAA"}}
        assert len(contents[-1]["parts"]) == 2
        assert envelope.content == "Bonjour"
        assert (envelope.tokens.input, envelope.tokens.output) == (9, 2)

    async def test_missing_candidates(self, mock_http, make_request):
        adapter = GoogleAdapter("gk-test", mock_http(lambda r: httpx.Response(200, json={"candidates": []})))
        with pytest.raises(ResponseShapeError):
            await adapter.handle(make_request())


class TestXAI:

    def test_alias_default(self):
        assert resolve_grok("grok-2-vision") == "grok-2-vision-latest"
        assert resolve_grok("something-else") == "grok-2-latest"

    async def test_non_json_error_body(self, mock_http, make_request):
        adapter = XAIAdapter("xk", mock_http(lambda r: httpx.Response(502, text="<html>Bad gateway</html>")))
        with pytest.raises(UpstreamHTTPError) as excinfo:
            await adapter.handle(make_request())
        assert excinfo.value.status_code == 502

    async def test_non_json_success_body(self, mock_http, make_request):
        adapter = XAIAdapter("xk", mock_http(lambda r: httpx.Response(200, text="not json")))
        with pytest.raises(ResponseShapeError):
            await adapter.handle(make_request())

    async def test_code_msg_auth_error(self, mock_http, make_request):
        body = {"code": 401, "msg": "令牌无效"}
        adapter = XAIAdapter("xk", mock_http(lambda r: httpx.Response(200, json=body)))
        with pytest.raises(UpstreamHTTPError, match="authentication failed") as excinfo:
            await adapter.handle(make_request())
        assert excinfo.value.status_code == 401

    async def test_success_with_reasoning(self, mock_http, make_request, make_model, completion_body):
        captured = {}
        body = completion_body("Grok says hi", model="grok-3-mini")
        body["choices"][0]["message"]["reasoning_content"] = "thinking..."
        body["usage"]["completion_tokens_details"] = {"reasoning_tokens": 4}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=body)

        adapter = XAIAdapter("xk", mock_http(handler))
        envelope = await adapter.handle(make_request(
            model=make_model("grok-3-mini", provider="xai"),
            images=["data:image/png;base64,AAAA"],
        ))

        assert captured["body"]["model"] == "grok-3-mini"
        assert isinstance(captured["body"]["messages"][-1]["content"], str)
        assert envelope.model == "grok-3-mini"
        assert envelope.reasoning_content == "thinking..."
        assert envelope.tokens.reasoning == 4


class TestKrutrim:

    def test_split_reasoning(self):
        assert split_reasoning("<think>plan it</think>\nAnswer") == ("Answer", "plan it")
        assert split_reasoning("Plain") == ("Plain", None)

    async def test_fixed_model_timeout_and_file_budget(self, mock_http, make_request, make_model, completion_body):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            captured["timeout"] = request.extensions.get("timeout")
            return httpx.Response(200, json=completion_body("<think>hm</think>Done"))

        files = [Attachment(name="big.log", content="x" * (60 * 1024))]
        adapter = KrutrimAdapter("kk", mock_http(handler))
        envelope = await adapter.handle(make_request(
            "Check the log",
            model=make_model("krutrim-r1", provider="krutrim"),
            attachments=files,
        ))

        assert captured["body"]["model"] == "DeepSeek-R1"
        assert captured["timeout"]["read"] == 30.0
        user_text = captured["body"]["messages"][-1]["content"]
        assert user_text.count("x") <= 50 * 1024
        assert "content truncated" in user_text
        assert envelope.content == "Done"
        assert envelope.reasoning_content == "hm"

    async def test_timeout_becomes_provider_error(self, mock_http, make_request):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        adapter = KrutrimAdapter("kk", mock_http(handler))
        with pytest.raises(ProviderError, match="timed out"):
            await adapter.handle(make_request())


class TestOpenRouter:

    @pytest.mark.parametrize(
        "model_id, provider, expected",
        [
            ("claude-3-5-sonnet-20241022", "anthropic", "anthropic/claude-3.5-sonnet"),
            ("gpt-4-turbo", "openai", "openai/gpt-4-turbo"),
            ("o4-mini", "openai", "openai/o4-mini"),
            ("meta-llama/llama-3-70b-instruct", "meta", "meta-llama/llama-3-70b-instruct"),
            ("codestral-latest", "mistral", "mistralai/codestral-latest"),
            ("mystery", "", DEFAULT_MODEL),
        ],
    )
    def test_model_mapping(self, model_id, provider, expected):
        assert map_model_id(model_id, provider) == expected

    @pytest.mark.parametrize(
        "model_id, expected",
        [
            ("claude-3-opus-20240229", 4000),
            ("gpt-4o", 3000),
            ("gpt-4o-mini", 2000),
            ("some-model", 1500),
        ],
    )
    def test_token_tiers(self, model_id, expected):
        assert max_tokens_for(model_id) == expected

    def test_extra_parameters(self, make_model):
        thinking = make_model("claude-3-7-sonnet-thinking", provider="anthropic")
        assert extra_parameters(thinking, map_model_id(thinking.id)) == {
            "reasoning": {"max_tokens": 2000},
            "include_reasoning": True,
        }
        r1 = make_model("deepseek-r1", provider="krutrim")
        assert extra_parameters(r1, map_model_id(r1.id)) == {"include_reasoning": True}
        assert extra_parameters(make_model("gpt-4o"), "openai/gpt-4o") == {}

    async def test_request_and_actual_model(self, mock_http, make_request, make_model, completion_body):
        captured = {}
        body = completion_body("Routed", model="anthropic/claude-3.5-sonnet")
        body["choices"][0]["message"]["reasoning"] = "routing thoughts"

        def handler(request):
            captured["url"] = request.url
            captured["headers"] = request.headers
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=body)

        adapter = OpenRouterAdapter("or-key", mock_http(handler))
        envelope = await adapter.handle(make_request(
            model=make_model("claude-3-5-sonnet-20241022", provider="anthropic"),
        ))

        assert captured["url"].path == "/api/v1/chat/completions"
        assert captured["headers"]["HTTP-Referer"] == "https://krix.app"
        assert captured["headers"]["X-Title"] == "Krix AI Assistant"
        assert captured["body"]["model"] == "anthropic/claude-3.5-sonnet"
        assert captured["body"]["max_tokens"] == 3000
        assert envelope.provider == "openrouter"
        assert envelope.model == "claude-3-5-sonnet-20241022"
        assert envelope.actual_model == "anthropic/claude-3.5-sonnet"
        assert envelope.reasoning_content == "routing thoughts"
        assert envelope.to_wire()["actualModel"] == "anthropic/claude-3.5-sonnet"

    async def test_reasoning_without_answer(self, mock_http, make_request, make_model, completion_body):
        body = completion_body(None, model="deepseek/deepseek-r1")
        body["choices"][0]["message"]["reasoning"] = "long chain of thought"

        adapter = OpenRouterAdapter("or-key", mock_http(lambda request: httpx.Response(200, json=body)))
        envelope = await adapter.handle(make_request(model=make_model("deepseek-r1", provider="deepseek")))

        assert envelope.content == REASONING_ONLY_PLACEHOLDER
        assert envelope.reasoning_content == "long chain of thought"
        assert envelope.to_wire()["content"] != ""
