"""
Converters package for format conversion.

Translates OpenAI Chat Completions traffic to and from the Anthropic Messages
format spoken by the upstream API.
"""

from .base import BaseConverter, BaseStreamingConverter
from .openai import OpenAIConverter, OpenAIStreamingConverter, map_finish_reason
from .sse import SSEDecoder, SSEEvent, format_sse, iter_sse_events

__all__ = [
    "BaseConverter",
    "BaseStreamingConverter",
    "OpenAIConverter",
    "OpenAIStreamingConverter",
    "SSEDecoder",
    "SSEEvent",
    "format_sse",
    "iter_sse_events",
    "map_finish_reason",
]
