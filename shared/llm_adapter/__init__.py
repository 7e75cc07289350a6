from shared.llm_adapter.base import ProviderAdapter
from shared.llm_adapter.errors import (
    ConfigurationError,
    GatewayError,
    MalformedRequestError,
    ProviderError,
    ResponseShapeError,
    UnsupportedProviderError,
    UpstreamHTTPError,
)
from shared.llm_adapter.models import (
    Attachment,
    ChatMessage,
    ChatRequest,
    ModelSpec,
    ProviderRequest,
    ResponseEnvelope,
    SearchResult,
    TokenUsage,
)

__all__ = [
    "ProviderAdapter",
    "GatewayError",
    "ProviderError",
    "ConfigurationError",
    "UpstreamHTTPError",
    "ResponseShapeError",
    "UnsupportedProviderError",
    "MalformedRequestError",
    "Attachment",
    "ChatMessage",
    "ChatRequest",
    "ModelSpec",
    "ProviderRequest",
    "ResponseEnvelope",
    "SearchResult",
    "TokenUsage",
]
