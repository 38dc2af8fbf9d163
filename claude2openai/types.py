"""
Request/response models for the claude2openai package.

OpenAI Chat Completions shapes on the client side, Anthropic Messages shapes
on the upstream side.
"""

import logging
import threading
import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class ModelDefaults:
    """Default values shared by config, client and converters."""

    DEFAULT_HOST = "0.0.0.0"
    DEFAULT_PORT = 6600
    DEFAULT_LOG_LEVEL = "INFO"
    DEFAULT_MAX_TOKENS = 4096
    DEFAULT_REQUEST_TIMEOUT = 120.0
    ANTHROPIC_API_BASE = "https://api.anthropic.com/v1"
    ANTHROPIC_VERSION = "2023-06-01"


def generate_unique_id(prefix: str) -> str:
    """Generate an id like ``chatcmpl-<hex>`` or ``toolu_<hex>``."""
    separator = "-" if prefix == "chatcmpl" else "_"
    return f"{prefix}{separator}{uuid.uuid4().hex[:24]}"


# OpenAI side


class OpenAIChatMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str
    content: str | list[dict[str, Any]] | None = None
    name: str | None = None
    tool_calls: list[dict[str, Any]] | None = None
    tool_call_id: str | None = None


class OpenAIChatRequest(BaseModel):
    """Incoming ``/v1/chat/completions`` body. Unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    model: str = ""
    messages: list[OpenAIChatMessage]
    stream: bool = False
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    max_completion_tokens: int | None = None
    stop: str | list[str] | None = None
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | dict[str, Any] | None = None
    user: str | None = None


# Anthropic side


class ClaudeContentBlockText(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ClaudeContentBlockImageBase64Source(BaseModel):
    type: Literal["base64"] = "base64"
    media_type: str
    data: str


class ClaudeContentBlockImageURLSource(BaseModel):
    type: Literal["url"] = "url"
    url: str


class ClaudeContentBlockImage(BaseModel):
    type: Literal["image"] = "image"
    source: ClaudeContentBlockImageBase64Source | ClaudeContentBlockImageURLSource


class ClaudeContentBlockToolUse(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ClaudeContentBlockToolResult(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str | list[dict[str, Any]] = ""


class ClaudeContentBlockThinking(BaseModel):
    type: Literal["thinking"] = "thinking"
    thinking: str
    signature: str | None = None


ClaudeContentBlock = (
    ClaudeContentBlockText
    | ClaudeContentBlockImage
    | ClaudeContentBlockToolUse
    | ClaudeContentBlockToolResult
    | ClaudeContentBlockThinking
)


class ClaudeMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str | list[ClaudeContentBlock]


class ClaudeTool(BaseModel):
    name: str
    description: str | None = None
    input_schema: dict[str, Any]


class ClaudeToolChoiceAuto(BaseModel):
    type: Literal["auto"] = "auto"


class ClaudeToolChoiceAny(BaseModel):
    type: Literal["any"] = "any"


class ClaudeToolChoiceNone(BaseModel):
    type: Literal["none"] = "none"


class ClaudeToolChoiceTool(BaseModel):
    type: Literal["tool"] = "tool"
    name: str


ClaudeToolChoice = (
    ClaudeToolChoiceAuto | ClaudeToolChoiceAny | ClaudeToolChoiceNone | ClaudeToolChoiceTool
)


class ClaudeMessagesRequest(BaseModel):
    model: str
    max_tokens: int
    messages: list[ClaudeMessage]
    system: str | None = None
    stream: bool = False
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    stop_sequences: list[str] | None = None
    tools: list[ClaudeTool] | None = None
    tool_choice: ClaudeToolChoice | None = None

    def to_payload(self) -> dict[str, Any]:
        """Dump for the upstream API, leaving out unset optional fields."""
        return self.model_dump(exclude_none=True)


class ClaudeUsage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None


KNOWN_BLOCK_TYPES = {"text", "image", "tool_use", "tool_result", "thinking"}


class ClaudeMessagesResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str = "message"
    role: str = "assistant"
    model: str
    content: list[ClaudeContentBlock] = Field(default_factory=list)
    stop_reason: str | None = None
    stop_sequence: str | None = None
    usage: ClaudeUsage = Field(default_factory=ClaudeUsage)

    @field_validator("content", mode="before")
    @classmethod
    def _drop_unknown_blocks(cls, value):
        if isinstance(value, list):
            kept = []
            for block in value:
                if isinstance(block, dict) and block.get("type") not in KNOWN_BLOCK_TYPES:
                    logger.debug(f"Dropping unsupported response block: {block.get('type')}")
                    continue
                kept.append(block)
            return kept
        return value


class SessionUsageStats:
    """Token usage accumulated since the server process started."""

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        self.total_requests = 0
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.model_usage: dict[str, dict[str, int]] = {}

    def update_usage(self, usage: ClaudeUsage, model: str) -> None:
        with self._lock:
            self.total_requests += 1
            self.total_input_tokens += usage.input_tokens
            self.total_output_tokens += usage.output_tokens

            per_model = self.model_usage.setdefault(
                model, {"requests": 0, "input_tokens": 0, "output_tokens": 0}
            )
            per_model["requests"] += 1
            per_model["input_tokens"] += usage.input_tokens
            per_model["output_tokens"] += usage.output_tokens

    def get_session_summary(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total_requests": self.total_requests,
                "total_input_tokens": self.total_input_tokens,
                "total_output_tokens": self.total_output_tokens,
                "total_tokens": self.total_input_tokens + self.total_output_tokens,
                "models": {name: dict(stats) for name, stats in self.model_usage.items()},
            }


global_usage_stats = SessionUsageStats()
