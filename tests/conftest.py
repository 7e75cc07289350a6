"""Shared fixtures: model specs, normalized requests and fake vendor transports."""

import httpx
import pytest

from shared.llm_adapter.models import ModelSpec, ProviderRequest


@pytest.fixture
def make_model():
    def _make(model_id="gpt-4o", provider="openai", capabilities=None, **extra):
        return ModelSpec(
            id=model_id,
            provider=provider,
            capabilities=capabilities if capabilities is not None else ["text"],
            **extra,
        )

    return _make


@pytest.fixture
def make_request(make_model):
    def _make(content="Hello there", model=None, **kwargs):
        kwargs.setdefault("system_prompt", "You are Krix.")
        return ProviderRequest(content=content, model=model or make_model(), **kwargs)

    return _make


@pytest.fixture
def mock_http():
    """Build an httpx.AsyncClient whose requests are answered by ``handler``."""

    def _make(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


def chat_completion(content, model="gpt-4o", tool_calls=None, prompt_tokens=10, completion_tokens=5):
    """Minimal chat-completions body as the OpenAI-compatible APIs return it."""
    message = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": "tool_calls" if tool_calls else "stop",
            }
        ],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


@pytest.fixture
def completion_body():
    return chat_completion
