"""Abstract base class that all provider adapters must implement."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from shared.llm_adapter.errors import (
    ConfigurationError,
    ProviderError,
    ResponseShapeError,
    UpstreamHTTPError,
)
from shared.llm_adapter.formatting import error_detail
from shared.llm_adapter.models import ProviderRequest, ResponseEnvelope

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """
    Contract for provider adapters.

    Every implementation MUST:
    - Accept a normalized ProviderRequest and return a ResponseEnvelope
      with the same shape as every other adapter
    - Raise a provider-prefixed GatewayError (never return an error string)
      so the router can apply its single fallback hop
    """

    name: str = ""
    display_name: str = ""
    api_key_env: str = ""

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        timeout: float | None = None,
    ) -> None:
        self._api_key = api_key
        self._http = http_client
        self._timeout = timeout

    @abstractmethod
    async def handle(self, request: ProviderRequest) -> ResponseEnvelope:
        """Send the request to the vendor and normalize the answer."""

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _require_key(self) -> str:
        if not self._api_key:
            raise ConfigurationError(self.display_name, self.api_key_env)
        return self._api_key

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST a JSON body and return the decoded JSON answer."""
        response = await self._send(url, payload, headers, params)
        if not response.is_success:
            raise self._http_error(response)
        try:
            return response.json()
        except ValueError as exc:
            raise ResponseShapeError(
                self.display_name, f"invalid JSON: {response.text[:100]}"
            ) from exc

    async def _send(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        kwargs: dict[str, Any] = {"json": payload, "headers": headers, "params": params}
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        try:
            return await self._http.post(url, **kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderError(
                self.display_name, f"request timed out after {self._timeout}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.display_name, f"request failed: {exc}") from exc

    def _http_error(self, response: httpx.Response) -> UpstreamHTTPError:
        text = response.text
        try:
            body: Any = json.loads(text)
        except ValueError:
            body = None
        detail = error_detail(body, text[:300] or "Unknown error")
        logger.error(
            "%s API error %d: %s", self.display_name, response.status_code, text[:500]
        )
        return UpstreamHTTPError(self.display_name, response.status_code, detail)
