"""Static model registry and application constants.

The registry is built once at startup (see chet.main) and handed to the
request path as a read-only mapping. Entries are frozen dataclasses.
"""

import os
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

DEFAULT_MODEL = "llama-3.3-70b"

# Max characters kept per diagnostic snippet and raw-body preview
PREVIEW_LENGTH = 200

SYSTEM_PROMPT = (
    "You are C.H.E.T. (Chat Helper for (almost) Every Task), a helpful and friendly "
    "AI assistant. You are designed to assist with a wide variety of tasks and provide "
    "concise, accurate, and helpful responses. Always identify yourself as C.H.E.T. "
    "when introducing yourself or when asked about your identity."
)


@dataclass(frozen=True)
class ParamBounds:
    """Default and inclusive [minimum, maximum] range for one tunable parameter.

    Attributes:
        default: Value used when the request omits the parameter. None means
            the parameter is left out of the provider call entirely.
        minimum: Lowest accepted value.
        maximum: Highest accepted value.
    """
    default: float | None
    minimum: float
    maximum: float

    def clamp(self, value: float | None) -> float | None:
        """Clamp a requested value into range, or fall back to the default."""
        if value is None:
            return self.default
        return max(self.minimum, min(value, self.maximum))


SEED_BOUNDS = ParamBounds(None, 1, 9_999_999_999)
REPETITION_PENALTY_BOUNDS = ParamBounds(None, 0, 2)
FREQUENCY_PENALTY_BOUNDS = ParamBounds(None, -2, 2)
PRESENCE_PENALTY_BOUNDS = ParamBounds(None, -2, 2)


@dataclass(frozen=True)
class ModelConfig:
    """One inference model's identity, parameter ranges and capabilities."""
    id: str
    name: str
    description: str
    context_window: int
    max_tokens: ParamBounds
    temperature: ParamBounds
    top_p: ParamBounds
    top_k: ParamBounds
    seed: ParamBounds = SEED_BOUNDS
    repetition_penalty: ParamBounds = REPETITION_PENALTY_BOUNDS
    frequency_penalty: ParamBounds = FREQUENCY_PENALTY_BOUNDS
    presence_penalty: ParamBounds = PRESENCE_PENALTY_BOUNDS
    supports_tools: bool = False
    supports_json_mode: bool = False

    def to_public(self, key: str) -> dict:
        """Flatten into the JSON shape served by GET /api/models."""
        return {
            "key": key,
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "contextWindow": self.context_window,
            "maxTokensDefault": self.max_tokens.default,
            "maxTokensMax": self.max_tokens.maximum,
            "temperatureDefault": self.temperature.default,
            "temperatureMin": self.temperature.minimum,
            "temperatureMax": self.temperature.maximum,
            "topPDefault": self.top_p.default,
            "topPMin": self.top_p.minimum,
            "topPMax": self.top_p.maximum,
            "topKDefault": self.top_k.default,
            "topKMin": self.top_k.minimum,
            "topKMax": self.top_k.maximum,
            "supportsTools": self.supports_tools,
            "supportsJsonMode": self.supports_json_mode,
        }


def _entry(model_id: str, name: str, description: str, context_window: int,
           max_tokens_default: int, max_tokens_max: int,
           top_p_min: float = 0, top_p_max: float = 2) -> ModelConfig:
    return ModelConfig(
        id=model_id,
        name=name,
        description=description,
        context_window=context_window,
        max_tokens=ParamBounds(max_tokens_default, 1, max_tokens_max),
        temperature=ParamBounds(0.6, 0, 5),
        top_p=ParamBounds(0.9, top_p_min, top_p_max),
        top_k=ParamBounds(40, 1, 50),
        supports_tools=True,
        supports_json_mode=True,
    )


def build_model_registry() -> Mapping[str, ModelConfig]:
    """Build the read-only model registry keyed by public model key."""
    models = {
        "llama-3.3-70b": _entry(
            "@cf/meta/llama-3.3-70b-instruct-fp8-fast",
            "Llama 3.3 70B (Fast)",
            "High-performance general purpose model",
            131072, 1024, 4096,
        ),
        "qwen2.5-coder-32b": _entry(
            "@cf/qwen/qwen2.5-coder-32b-instruct",
            "Qwen2.5 Coder 32B",
            "Advanced coding and technical tasks specialist",
            32768, 512, 2048,
        ),
        "deepseek-coder-6.7b": _entry(
            "@hf/thebloke/deepseek-coder-6.7b-instruct-awq",
            "DeepSeek Coder 6.7B",
            "Code generation and programming assistance",
            4096, 256, 1024,
            top_p_min=0.001, top_p_max=1,
        ),
        "hermes-2-pro-7b": _entry(
            "@hf/nousresearch/hermes-2-pro-mistral-7b",
            "Hermes 2 Pro 7B",
            "Function calling and structured output specialist",
            24000, 256, 1024,
            top_p_min=0.001, top_p_max=1,
        ),
    }
    return MappingProxyType(models)


MODEL_EXAMPLES = {
    "qwen2.5-coder-32b": {
        "prompts": [
            "Write a Python function to calculate the factorial of a number using recursion",
            "Explain the difference between let, const, and var in JavaScript",
            "Create a SQL query to find the top 5 customers by total order value",
            "Debug this code and explain what's wrong: for i in range(10) print(i)",
        ],
        "jsonMode": {
            "prompt": "Extract key information from this text as JSON",
            "schema": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "occupation": {"type": "string"},
                    "skills": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
    },
    "deepseek-coder-6.7b": {
        "prompts": [
            "Complete this function: def fibonacci(n):",
            "What's wrong with this loop? while True: print('hello')",
            "Convert this Python code to JavaScript: [x**2 for x in range(10)]",
            "Explain what this regex does: ^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\\.[a-zA-Z]{2,}$",
        ],
    },
    "hermes-2-pro-7b": {
        "prompts": [
            "Help me plan a trip to Japan with a $3000 budget",
            "Create a structured response about the solar system",
            "Analyze this data and provide insights in JSON format",
            "What are the main features of blockchain technology?",
        ],
        "functionCalling": {
            "example": "I need to check the weather and set a reminder",
            "tools": [
                {
                    "type": "function",
                    "function": {
                        "name": "get_weather",
                        "description": "Get current weather for a location",
                        "parameters": {
                            "type": "object",
                            "properties": {
                                "location": {"type": "string", "description": "City name"},
                            },
                        },
                    },
                },
            ],
        },
    },
    "llama-3.3-70b": {
        "prompts": [
            "Explain quantum computing to a 10-year-old",
            "Write a short story about time travel",
            "Analyze the economic impacts of renewable energy",
            "Compare and contrast different machine learning algorithms",
        ],
    },
}


def is_production() -> bool:
    """True when ENVIRONMENT is set to production."""
    return os.environ.get("ENVIRONMENT", "development").lower() == "production"
