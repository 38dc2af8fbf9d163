"""
Claude2OpenAI - A proxy to convert Claude API into OpenAI API format.

Serves the OpenAI Chat Completions API and forwards every request to the
Anthropic Messages API.
"""

__version__ = "1.0.3"
__homepage__ = "https://github.com/missuo/claude2openai"

WELCOME_MESSAGE = f"Welcome to Claude2OpenAI, Made by Vincent Yang. {__homepage__}"

from .config import Config  # noqa: E402
from .types import ClaudeMessagesRequest, ClaudeMessagesResponse, OpenAIChatRequest  # noqa: E402

__all__ = [
    "WELCOME_MESSAGE",
    "Config",
    "ClaudeMessagesRequest",
    "ClaudeMessagesResponse",
    "OpenAIChatRequest",
]
