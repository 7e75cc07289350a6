"""Tests for the chat pipeline and the HTTP surface of the gateway."""

import httpx
import pytest
from fastapi.testclient import TestClient

from services.chat_gateway import main
from services.chat_gateway.config import GatewayConfig
from services.chat_gateway.pipeline import parse_chat_request
from shared.llm_adapter.base import ProviderAdapter
from shared.llm_adapter.cache import InMemoryPromptCache
from shared.llm_adapter.errors import MalformedRequestError, UpstreamHTTPError
from shared.llm_adapter.models import ResponseEnvelope, TokenUsage
from shared.llm_adapter.registry import AdapterRegistry
from shared.observability.metrics import GatewayMetrics

BRAVE_HOST = "api.search.brave.com"


class RecordingAdapter(ProviderAdapter):

    def __init__(self, name="openai", fail=False, reasoning=None):
        super().__init__(api_key="key", http_client=None)
        self.name = name
        self.display_name = "OpenAI"
        self.fail = fail
        self.reasoning = reasoning
        self.requests = []

    async def handle(self, request):
        self.requests.append(request)
        if self.fail:
            raise UpstreamHTTPError(self.display_name, 503, "unavailable")
        return ResponseEnvelope(
            content="Answer",
            model=request.model_id,
            provider=self.display_name,
            tokens=TokenUsage(input=3, output=2),
            web_search_results=request.search_results,
            reasoning_content=self.reasoning,
        )


def brave_and_pages(request):
    if request.url.host == BRAVE_HOST:
        return httpx.Response(200, json={"web": {"results": [
            {"title": f"News {i}", "url": f"https://news{i}.example", "description": "d"}
            for i in range(5)
        ]}})
    return httpx.Response(200, text="page body", headers={"content-type": "text/plain"})


def pipeline_with(adapter, mock_http, **overrides):
    settings = dict(brave_api_key="brave", openrouter_fallback=False)
    settings.update(overrides)
    registry = AdapterRegistry()
    registry.register(adapter)
    return main.build_pipeline(
        GatewayConfig(**settings),
        mock_http(brave_and_pages),
        InMemoryPromptCache(),
        GatewayMetrics(),
        adapters=registry,
    )


def chat_body(content, **extra):
    body = {"content": content, "model": {"id": "gpt-4o", "provider": "openai"}}
    body.update(extra)
    return body


class TestParseChatRequest:

    def test_wire_aliases(self):
        request = parse_chat_request(
            b'{"content": "hi", "model": {"id": "o1", "provider": "openai", "reasoningEffort": "low"}}'
        )
        assert request.model.reasoning_effort == "low"
        assert request.messages == []

    def test_show_reasoning_flag_is_ignored(self):
        request = parse_chat_request(
            b'{"content": "hi", "model": {"id": "o1", "provider": "openai", "showReasoning": false}}'
        )
        assert "showReasoning" not in request.model.model_dump(by_alias=True)

    @pytest.mark.parametrize("body", [b"{not json", b"[1, 2]", b'{"content": "hi"}'])
    def test_malformed(self, body):
        with pytest.raises(MalformedRequestError):
            parse_chat_request(body)


class TestChatPipeline:

    async def test_search_urls_and_prompt_reach_adapter(self, mock_http):
        adapter = RecordingAdapter()
        pipeline = pipeline_with(adapter, mock_http)

        envelope = await pipeline.run(parse_chat_request(chat_body(
            "latest AI news from https://blog.example/post",
            messages=[{"role": "user", "content": "I prefer short answers"}],
        )))

        sent = adapter.requests[0]
        assert envelope.content == "Answer"
        assert len(sent.search_results) == 3
        assert [a.source_url for a in sent.attachments] == ["https://blog.example/post"]
        assert sent.system_prompt.startswith("You are Krix")
        assert envelope.web_search_results == sent.search_results

    async def test_reasoning_returned_without_client_flag(self, mock_http):
        pipeline = pipeline_with(RecordingAdapter(reasoning="step by step"), mock_http)
        body = chat_body("hello there")
        body["model"]["showReasoning"] = False

        envelope = await pipeline.run(parse_chat_request(body))
        assert envelope.to_wire()["reasoningContent"] == "step by step"

    async def test_search_disabled(self, mock_http):
        adapter = RecordingAdapter()
        pipeline = pipeline_with(adapter, mock_http, web_search_enabled=False)

        await pipeline.run(parse_chat_request(chat_body("latest AI news")))
        assert adapter.requests[0].search_results == []

    async def test_failure_becomes_error_envelope_with_results(self, mock_http):
        pipeline = pipeline_with(RecordingAdapter(fail=True), mock_http)

        envelope = await pipeline.run(parse_chat_request(chat_body("latest AI news")))

        assert envelope.content == "Error: OpenAI API error: 503 - unavailable"
        assert envelope.provider == "openai"
        assert envelope.model == "gpt-4o"
        assert envelope.tokens.input == 0
        assert len(envelope.web_search_results) == 3

    async def test_unknown_provider_without_fallback(self, mock_http):
        pipeline = pipeline_with(RecordingAdapter(), mock_http)
        body = {"content": "hello there", "model": {"id": "llama-3", "provider": "meta"}}

        envelope = await pipeline.run(parse_chat_request(body))
        assert envelope.content == "Error: Provider meta not supported"


class TestHttpSurface:

    @pytest.fixture
    def client(self, monkeypatch, mock_http):
        def vendor(request):
            return httpx.Response(401, json={"error": {"message": "Invalid key", "type": "auth"}})

        pipeline = main.build_pipeline(
            GatewayConfig(openai_api_key="sk-test", openrouter_fallback=False, web_search_enabled=False),
            mock_http(vendor),
            InMemoryPromptCache(),
            GatewayMetrics(),
        )
        monkeypatch.setattr(main, "cfg", GatewayConfig())
        monkeypatch.setattr(main, "pipeline", pipeline)
        monkeypatch.setattr(main, "registry", pipeline.registry)
        return TestClient(main.app)

    def test_vendor_failure_is_http_200(self, client):
        response = client.post("/chat", json=chat_body("hello there"))
        assert response.status_code == 200
        body = response.json()
        assert body["content"] == "Error: OpenAI API error: 401 - Invalid key"
        assert body["provider"] == "openai"
        assert body["webSearchResults"] == []
        assert body["tokens"] == {"input": 0, "output": 0}

    def test_malformed_json_is_http_200(self, client):
        response = client.post("/chat", content=b"{not json", headers={"content-type": "application/json"})
        assert response.status_code == 200
        assert response.json()["content"].startswith("Error: Invalid JSON body")

    def test_missing_model(self, client):
        response = client.post("/chat", json={"content": "hi"})
        assert response.status_code == 200
        assert response.json()["content"].startswith("Error: Invalid request: model")

    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"Origin": "https://app.krix.example", "Access-Control-Request-Method": "POST"},
        ],
        ids=["bare", "browser"],
    )
    def test_preflight(self, client, headers):
        response = client.options("/chat", headers=headers)
        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "*"
        assert "POST" in response.headers["access-control-allow-methods"]
        assert "content-type" in response.headers["access-control-allow-headers"]

    def test_preflight_restricted_origins(self, client, monkeypatch):
        monkeypatch.setattr(main, "cfg", GatewayConfig(cors_origins=("https://app.krix.example",)))
        allowed = client.options("/chat", headers={"Origin": "https://app.krix.example"})
        assert allowed.headers["access-control-allow-origin"] == "https://app.krix.example"
        other = client.options("/chat", headers={"Origin": "https://elsewhere.example"})
        assert "access-control-allow-origin" not in other.headers
        assert other.content == b""

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["providers"] == ["anthropic", "google", "krutrim", "openai", "openrouter", "xai"]
        assert "totalRequests" in body["metrics"]

    def test_prometheus(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "chat_requests_total" in response.text
