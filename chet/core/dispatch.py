"""Validation and parameter resolution between the decoder and the provider call.

Turns a decoded JSON object into a ChatRequest checked against the model
registry, then into the InferenceParams bundle sent to the provider, with
every tunable clamped into the model's bounds.
"""

from dataclasses import asdict, dataclass
from typing import Any, Mapping

import structlog
from pydantic import ValidationError

from chet.api.schemas import ChatMessage, ChatRequest
from chet.core.config import SYSTEM_PROMPT, ModelConfig

logger = structlog.get_logger(__name__)

# Parameters echoed back to the client in the stream metadata line
_METADATA_FIELDS = (
    "max_tokens", "temperature", "top_p", "top_k", "seed",
    "repetition_penalty", "frequency_penalty", "presence_penalty",
)


class ChatRequestError(Exception):
    """Decoded body is not a usable chat request. Maps to a 400."""

    def __init__(self, message: str, field: str):
        super().__init__(message)
        self.field = field


class InvalidShapeError(ChatRequestError):
    """Body parsed as JSON but a field has the wrong shape."""
    pass


class UnknownModelError(ChatRequestError):
    """Requested model key is not in the registry."""
    pass


@dataclass
class InferenceParams:
    """Resolved parameter bundle for one provider call. None fields are omitted."""
    messages: list[dict[str, Any]]
    max_tokens: int
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    seed: int | None = None
    repetition_penalty: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    response_format: dict[str, Any] | None = None
    tools: list[dict[str, Any]] | None = None

    def to_payload(self) -> dict[str, Any]:
        """Provider request body."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def metadata(self) -> dict[str, Any]:
        """Numeric parameters actually used, for the stream metadata line."""
        return {k: getattr(self, k) for k in _METADATA_FIELDS if getattr(self, k) is not None}


def validate_chat_request(body: dict, models: Mapping[str, ModelConfig]) -> ChatRequest:
    """Check a decoded body against the ChatRequest shape and the registry.

    Args:
        body: JSON object recovered by the body decoder.
        models: The read-only model registry.

    Returns:
        The validated ChatRequest.

    Raises:
        InvalidShapeError: If messages is missing or not a list, or any field
            fails validation (including an unknown message role).
        UnknownModelError: If model does not name a registry entry.
    """
    messages = body.get("messages")
    if not isinstance(messages, list):
        raise InvalidShapeError("Invalid request: messages must be an array", "messages")

    try:
        request = ChatRequest.model_validate(body)
    except ValidationError as e:
        error = e.errors()[0]
        field = str(error["loc"][0]) if error["loc"] else "body"
        raise InvalidShapeError(f"Invalid request: {field}: {error['msg']}", field) from e

    if request.model not in models:
        raise UnknownModelError(f"Invalid model specified: {request.model}", "model")

    return request


def with_system_prompt(messages: list[ChatMessage], prompt: str = SYSTEM_PROMPT) -> list[ChatMessage]:
    """Prepend the default system message unless one is already present."""
    if any(msg.role == "system" for msg in messages):
        return list(messages)
    return [ChatMessage(role="system", content=prompt), *messages]


def resolve_params(request: ChatRequest, config: ModelConfig,
                   system_prompt: str = SYSTEM_PROMPT) -> InferenceParams:
    """Build the provider parameter bundle for a validated request.

    Numeric parameters are clamped into the model's [min, max]; absent ones
    take the model default. JSON mode and tools are only forwarded when the
    model supports them.
    """
    messages = with_system_prompt(request.messages, system_prompt)

    response_format = None
    if request.use_json_mode and config.supports_json_mode:
        response_format = request.response_format or {"type": "json_object"}

    tools = request.tools if request.tools and config.supports_tools else None

    params = InferenceParams(
        messages=[msg.model_dump(exclude_none=True) for msg in messages],
        max_tokens=config.max_tokens.clamp(request.max_tokens),
        temperature=config.temperature.clamp(request.temperature),
        top_p=config.top_p.clamp(request.top_p),
        top_k=config.top_k.clamp(request.top_k),
        seed=config.seed.clamp(request.seed),
        repetition_penalty=config.repetition_penalty.clamp(request.repetition_penalty),
        frequency_penalty=config.frequency_penalty.clamp(request.frequency_penalty),
        presence_penalty=config.presence_penalty.clamp(request.presence_penalty),
        response_format=response_format,
        tools=tools,
    )
    logger.debug("dispatch.params_resolved", model=request.model, **params.metadata())
    return params
