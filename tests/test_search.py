"""Tests for the Brave search client."""

import httpx

from services.chat_gateway.search import SEARCH_URL, BraveSearchClient


class TestBraveSearch:

    async def test_request_and_placeholders(self, mock_http):
        captured = {}

        def handler(request):
            captured["request"] = request
            return httpx.Response(200, json={
                "web": {
                    "results": [
                        {"title": "Rates today", "url": "https://rates.example", "description": "4.5%"},
                        {"url": "https://bare.example"},
                    ]
                }
            })

        client = BraveSearchClient("brave-key", mock_http(handler))
        results = await client.search("mortgage rates", count=20)

        request = captured["request"]
        assert str(request.url).startswith(SEARCH_URL)
        assert request.url.params["q"] == "mortgage rates"
        assert request.url.params["count"] == "5"
        assert request.url.params["search_lang"] == "en"
        assert request.headers["X-Subscription-Token"] == "brave-key"
        assert results[0].title == "Rates today"
        assert results[0].snippet == "4.5%"
        assert results[1].title == "No title"
        assert results[1].snippet == "No description available"

    async def test_missing_key_returns_empty(self, mock_http):
        def handler(request):
            raise AssertionError("no request without a key")

        client = BraveSearchClient("", mock_http(handler))
        assert not client.configured
        assert await client.search("anything") == []

    async def test_error_status_returns_empty(self, mock_http):
        client = BraveSearchClient("k", mock_http(lambda r: httpx.Response(429, text="slow down")))
        assert await client.search("news") == []

    async def test_transport_error_returns_empty(self, mock_http):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = BraveSearchClient("k", mock_http(handler))
        assert await client.search("news") == []

    async def test_unexpected_shape_returns_empty(self, mock_http):
        client = BraveSearchClient("k", mock_http(lambda r: httpx.Response(200, json={"web": []})))
        assert await client.search("news") == []
