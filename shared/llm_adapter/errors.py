"""Error taxonomy shared by the adapters, the router and the gateway."""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for every error raised inside the gateway."""


class ProviderError(GatewayError):
    """A vendor call failed. The message is always prefixed with the provider."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        self.detail = message
        super().__init__(f"{provider} {message}")


class ConfigurationError(ProviderError):
    """A vendor credential is missing."""

    def __init__(self, provider: str, env_var: str) -> None:
        self.env_var = env_var
        super().__init__(provider, f"API key not configured (set {env_var})")


class UpstreamHTTPError(ProviderError):
    def __init__(self, provider: str, status_code: int, detail: str) -> None:
        self.status_code = status_code
        super().__init__(provider, f"API error: {status_code} - {detail}")


class ResponseShapeError(ProviderError):
    """The vendor answered but the body is not what we expected."""

    def __init__(self, provider: str, detail: str) -> None:
        super().__init__(provider, f"returned an unexpected response: {detail}")


class UnsupportedProviderError(GatewayError):
    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Provider {provider} not supported")


class MalformedRequestError(GatewayError):
    """The inbound request body could not be parsed or validated."""
