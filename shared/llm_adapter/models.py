"""Data models for the LLM adapter layer."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ModelSpec(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    provider: str
    capabilities: list[str] = Field(default_factory=list)
    reasoning_effort: str | None = Field(default=None, alias="reasoningEffort")

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str
    content: str = ""


class ChatRequest(BaseModel):
    """Inbound body of POST /chat."""

    model_config = ConfigDict(extra="ignore")

    content: str = ""
    model: ModelSpec
    messages: list[ChatMessage] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)


class Attachment(BaseModel):
    """A file (or fetched web page) whose text is spliced into the prompt."""

    name: str
    mime_type: str = "text/plain"
    content: str = ""
    source_url: str | None = None

    @property
    def size(self) -> int:
        return len(self.content.encode("utf-8"))


class SearchResult(BaseModel):
    title: str = "No title"
    url: str = ""
    snippet: str = "No description available"


class FileSearchResult(BaseModel):
    filename: str
    snippet: str


class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0
    reasoning: int | None = None

    def __add__(self, other: TokenUsage) -> TokenUsage:
        reasoning = None
        if self.reasoning is not None or other.reasoning is not None:
            reasoning = (self.reasoning or 0) + (other.reasoning or 0)
        return TokenUsage(
            input=self.input + other.input,
            output=self.output + other.output,
            reasoning=reasoning,
        )


class ResponseEnvelope(BaseModel):
    """
    Uniform response returned to the client regardless of which adapter
    produced it. Serialize with ``to_wire()`` to get the camelCase keys.
    """

    model_config = ConfigDict(populate_by_name=True)

    content: str
    model: str
    provider: str
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    web_search_results: list[SearchResult] = Field(
        default_factory=list, alias="webSearchResults"
    )
    file_search_results: list[FileSearchResult] = Field(
        default_factory=list, alias="fileSearchResults"
    )
    reasoning_content: str | None = Field(default=None, alias="reasoningContent")
    actual_model: str | None = Field(default=None, alias="actualModel")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ProviderRequest(BaseModel):
    """Normalized input handed to every provider adapter."""

    history: list[ChatMessage] = Field(default_factory=list)
    content: str = ""
    model: ModelSpec
    system_prompt: str = ""
    images: list[str] = Field(default_factory=list)
    search_results: list[SearchResult] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)

    @property
    def model_id(self) -> str:
        return self.model.id
