"""Pydantic models for the API layer.

Wire format is camelCase (what the browser client sends); Python attributes
are snake_case via the alias generator.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chet.core.config import DEFAULT_MODEL


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ToolCallFunction(BaseModel):
    name: str
    arguments: str


class ToolCall(BaseModel):
    id: str
    type: Literal["function"] = "function"
    function: ToolCallFunction


class ChatMessage(BaseModel):
    """Single conversation turn, in the provider's field naming."""
    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[ToolCall] | None = None


class ChatRequest(_CamelModel):
    """Decoded body of POST /api/chat."""
    messages: list[ChatMessage]
    model: str = DEFAULT_MODEL
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    seed: int | None = None
    repetition_penalty: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    use_json_mode: bool = False
    tools: list[dict[str, Any]] | None = None
    response_format: dict[str, Any] | None = None


class SavedPrompt(_CamelModel):
    """Prompt stored under prompt:<id>."""
    id: str
    name: str
    content: str
    tags: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str


class PromptCreate(_CamelModel):
    name: str = ""
    content: str = ""
    tags: list[str] | None = None


class PromptUpdate(_CamelModel):
    id: str = ""
    name: str | None = None
    content: str | None = None
    tags: list[str] | None = None


class MCPServer(_CamelModel):
    """MCP server config stored under mcpserver:<id>."""
    id: str
    name: str
    url: str
    api_key: str = ""
    created_at: str
    updated_at: str


class MCPServerCreate(_CamelModel):
    name: str = ""
    url: str = ""
    api_key: str | None = None


class MCPServerUpdate(_CamelModel):
    id: str = ""
    name: str | None = None
    url: str | None = None
    api_key: str | None = None


class FileSaveRequest(_CamelModel):
    filename: str = ""
    content: str = ""
    content_type: str = "text/plain"
