"""
OpenAI adapter.

Two code paths behind one provider name:
  - Standard models  -> Chat Completions with ``web_search``/``file_search``
                        function tools
  - O-series models  -> Responses endpoint with ``reasoning.effort``

Both follow the same tool pattern: if the first answer requests a tool, the
tool runs and exactly one follow-up call (without tools) produces the final
answer. Token usage is summed across both calls.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from shared.llm_adapter.base import ProviderAdapter
from shared.llm_adapter.errors import (
    ProviderError,
    ResponseShapeError,
    UpstreamHTTPError,
)
from shared.llm_adapter.formatting import (
    error_detail,
    estimate_tokens,
    history_as_dicts,
    search_context_block,
    splice_files,
    usage_or_estimate,
)
from shared.llm_adapter.models import ProviderRequest, ResponseEnvelope, TokenUsage
from shared.logging.logger import preview
from shared.observability.metrics import provider_call_latency
from shared.tools import ChatToolbox, build_chat_toolbox, execute_tool
from shared.tools.chat_tools import SearchFunc

logger = logging.getLogger(__name__)

_REASONING_MODEL_RE = re.compile(r"^o\d")

REASONING_PENDING_PLACEHOLDER = (
    "The reasoning model is still working on this request. "
    "Please wait a moment and try again."
)


def is_reasoning_model(model_id: str) -> bool:
    """O-series ids (o1, o1-mini, o1-pro, o3-mini, ...) use the responses endpoint."""
    return bool(_REASONING_MODEL_RE.match(model_id.lower()))


def extract_responses_text(data: Any) -> str | None:
    """
    Pull the answer text out of a responses-endpoint body.

    Shapes are tried in order: ``output[].content[].text``, then a top-level
    ``output_text``, then ``output`` as a raw string.
    """
    if not isinstance(data, dict):
        return data if isinstance(data, str) and data else None

    output = data.get("output")
    if isinstance(output, list):
        for item in output:
            if not isinstance(item, dict) or item.get("type", "message") != "message":
                continue
            for part in item.get("content") or []:
                if isinstance(part, dict) and part.get("text"):
                    return part["text"]

    if isinstance(data.get("output_text"), str) and data["output_text"]:
        return data["output_text"]

    if isinstance(output, str) and output:
        return output
    return None


def _reasoning_summary(data: dict[str, Any]) -> str | None:
    summaries: list[str] = []
    for item in data.get("output") or []:
        if isinstance(item, dict) and item.get("type") == "reasoning":
            for part in item.get("summary") or []:
                if isinstance(part, dict) and part.get("text"):
                    summaries.append(part["text"])
    return "\n\n".join(summaries) or None


def _responses_usage(data: dict[str, Any]) -> TokenUsage:
    usage = data.get("usage") or {}
    details = usage.get("output_tokens_details") or {}
    return TokenUsage(
        input=usage.get("input_tokens") or 0,
        output=usage.get("output_tokens") or 0,
        reasoning=details.get("reasoning_tokens"),
    )


class OpenAIAdapter(ProviderAdapter):
    name = "openai"
    display_name = "OpenAI"
    api_key_env = "OPENAI_API_KEY"

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        search: SearchFunc | None = None,
        reasoning_effort: str = "high",
        max_tokens: int = 1024,
        temperature: float = 0.7,
        max_search_results: int = 3,
        search_timeout: float = 7.0,
        timeout: float | None = None,
        base_url: str | None = None,
    ) -> None:
        super().__init__(api_key, http_client, timeout)
        self._search = search
        self._reasoning_effort = reasoning_effort
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._max_search_results = max_search_results
        self._search_timeout = search_timeout
        self._base_url = base_url
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            kwargs: dict[str, Any] = {
                "api_key": self._require_key(),
                "http_client": self._http,
            }
            if self._timeout is not None:
                kwargs["timeout"] = self._timeout
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def handle(self, request: ProviderRequest) -> ResponseEnvelope:
        client = self._get_client()
        toolbox = build_chat_toolbox(
            self._search,
            request.attachments,
            request.search_results,
            max_results=self._max_search_results,
            search_timeout=self._search_timeout,
        )
        start = time.monotonic()
        try:
            if is_reasoning_model(request.model_id):
                logger.info(
                    "OpenAI reasoning model %s: %s",
                    request.model_id, preview(request.content),
                )
                return await self._handle_reasoning(client, request, toolbox)
            logger.info(
                "OpenAI chat model %s: %s", request.model_id, preview(request.content)
            )
            return await self._handle_standard(client, request, toolbox)
        finally:
            provider_call_latency.labels(provider=self.name).observe(
                time.monotonic() - start
            )

    # -- chat completions ------------------------------------------------

    def _system_text(self, request: ProviderRequest) -> str:
        context = search_context_block(request.search_results)
        if context:
            return f"{request.system_prompt}\n\n{context}"
        return request.system_prompt

    def _user_message(self, request: ProviderRequest) -> dict[str, Any]:
        text = splice_files(request.content, request.attachments)
        images = request.images
        if images and request.model.capabilities and not request.model.supports("images"):
            logger.info("Model %s does not accept images; dropping %d", request.model_id, len(images))
            images = []
        if not images:
            return {"role": "user", "content": text}
        parts: list[dict[str, Any]] = [{"type": "text", "text": text}]
        parts.extend({"type": "image_url", "image_url": {"url": img}} for img in images)
        return {"role": "user", "content": parts}

    async def _chat(self, client: AsyncOpenAI, **kwargs: Any):
        try:
            return await client.chat.completions.create(**kwargs)
        except openai.APIStatusError as exc:
            raise UpstreamHTTPError(
                self.display_name, exc.status_code, error_detail(exc.body, exc.message)
            ) from exc
        except openai.APITimeoutError as exc:
            raise ProviderError(self.display_name, "request timed out") from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(self.display_name, f"connection failed: {exc}") from exc

    async def _handle_standard(
        self, client: AsyncOpenAI, request: ProviderRequest, toolbox: ChatToolbox
    ) -> ResponseEnvelope:
        system_text = self._system_text(request)
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_text},
            *history_as_dicts(request.history),
            self._user_message(request),
        ]
        params: dict[str, Any] = {
            "model": request.model_id,
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }

        first_kwargs = dict(params, messages=messages)
        if len(toolbox.registry):
            first_kwargs["tools"] = toolbox.registry.chat_completions_specs()
            first_kwargs["tool_choice"] = "auto"

        response = await self._chat(client, **first_kwargs)
        if not response.choices:
            raise ResponseShapeError(self.display_name, "no choices in completion")
        message = response.choices[0].message
        tokens = self._chat_usage(response, [system_text, request.content], message.content or "")

        if message.tool_calls:
            follow_up = [
                *messages,
                {
                    "role": "assistant",
                    "content": message.content,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.function.name,
                                "arguments": call.function.arguments,
                            },
                        }
                        for call in message.tool_calls
                    ],
                },
            ]
            for call in message.tool_calls:
                result = await execute_tool(
                    toolbox.registry, call.function.name, call.function.arguments
                )
                payload = result.output if result.success else {"error": result.error}
                follow_up.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": json.dumps(payload, default=str),
                    }
                )
            logger.info(
                "OpenAI requested %d tool call(s); issuing follow-up completion",
                len(message.tool_calls),
            )
            response = await self._chat(client, **dict(params, messages=follow_up))
            if not response.choices:
                raise ResponseShapeError(self.display_name, "no choices in follow-up completion")
            message = response.choices[0].message
            tokens = tokens + self._chat_usage(response, [json.dumps(follow_up[-1])], message.content or "")

        if not message.content:
            raise ResponseShapeError(self.display_name, "completion has no content")

        return ResponseEnvelope(
            content=message.content,
            model=request.model_id,
            provider=self.display_name,
            tokens=tokens,
            web_search_results=toolbox.web_results or request.search_results,
            file_search_results=toolbox.file_results,
        )

    @staticmethod
    def _chat_usage(response, prompt_texts: list[str], completion: str) -> TokenUsage:
        usage = response.usage
        return usage_or_estimate(
            usage.prompt_tokens if usage else None,
            usage.completion_tokens if usage else None,
            prompt_texts,
            completion,
        )

    # -- responses (o-series) --------------------------------------------

    async def _responses(self, client: AsyncOpenAI, **kwargs: Any) -> dict[str, Any]:
        try:
            raw = await client.responses.with_raw_response.create(**kwargs)
        except openai.APIStatusError as exc:
            raise UpstreamHTTPError(
                self.display_name, exc.status_code, error_detail(exc.body, exc.message)
            ) from exc
        except openai.APITimeoutError as exc:
            raise ProviderError(self.display_name, "request timed out") from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(self.display_name, f"connection failed: {exc}") from exc
        try:
            return raw.http_response.json()
        except ValueError as exc:
            raise ResponseShapeError(self.display_name, "responses body is not JSON") from exc

    async def _handle_reasoning(
        self, client: AsyncOpenAI, request: ProviderRequest, toolbox: ChatToolbox
    ) -> ResponseEnvelope:
        system_text = self._system_text(request)
        user_text = splice_files(request.content, request.attachments)
        if request.images:
            user_content: Any = [{"type": "input_text", "text": user_text}]
            user_content.extend(
                {"type": "input_image", "image_url": img} for img in request.images
            )
        else:
            user_content = user_text

        input_items: list[Any] = [
            {"role": "system", "content": system_text},
            *history_as_dicts(request.history),
            {"role": "user", "content": user_content},
        ]
        effort = request.model.reasoning_effort or self._reasoning_effort

        first_kwargs: dict[str, Any] = {
            "model": request.model_id,
            "input": input_items,
            "reasoning": {"effort": effort},
        }
        if len(toolbox.registry):
            first_kwargs["tools"] = toolbox.registry.responses_specs()

        data = await self._responses(client, **first_kwargs)
        tokens = _responses_usage(data)

        calls = [
            item for item in data.get("output") or []
            if isinstance(item, dict) and item.get("type") == "function_call"
        ]
        if calls:
            follow_up = list(input_items)
            follow_up.extend(
                item for item in data["output"]
                if isinstance(item, dict) and item.get("type") != "message"
            )
            for call in calls:
                result = await execute_tool(
                    toolbox.registry, call.get("name", ""), call.get("arguments")
                )
                payload = result.output if result.success else {"error": result.error}
                follow_up.append(
                    {
                        "type": "function_call_output",
                        "call_id": call.get("call_id"),
                        "output": json.dumps(payload, default=str),
                    }
                )
            logger.info(
                "OpenAI reasoning model requested %d tool call(s); issuing follow-up",
                len(calls),
            )
            data = await self._responses(
                client,
                model=request.model_id,
                input=follow_up,
                reasoning={"effort": effort},
            )
            tokens = tokens + _responses_usage(data)

        content = extract_responses_text(data)
        if not content:
            logger.error(
                "Unexpected responses body for %s: %s",
                request.model_id, json.dumps(data, default=str)[:500],
            )
            content = REASONING_PENDING_PLACEHOLDER

        if not tokens.input:
            tokens.input = estimate_tokens(system_text, user_text)
        if not tokens.output:
            tokens.output = estimate_tokens(content)

        return ResponseEnvelope(
            content=content,
            model=request.model_id,
            provider=self.display_name,
            tokens=tokens,
            web_search_results=toolbox.web_results or request.search_results,
            file_search_results=toolbox.file_results,
            reasoning_content=_reasoning_summary(data),
        )
