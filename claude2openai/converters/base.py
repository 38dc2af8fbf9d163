"""
Base converter protocol for format conversion.

The Anthropic Messages format is what the upstream API speaks; each converter
translates a client format into it and translates Anthropic output back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from ..types import ClaudeMessagesRequest, ClaudeMessagesResponse


class BaseConverter(ABC):
    """
    Abstract base class for format converters.

    - request_to_anthropic: Convert incoming client request to Anthropic format
    - response_from_anthropic: Convert Anthropic response to client format
    """

    @abstractmethod
    def request_to_anthropic(
        self,
        payload: Any,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> ClaudeMessagesRequest:
        """
        Convert an incoming client request to Anthropic Messages format.

        Args:
            payload: Request in this converter's format
            model: Upstream model to use instead of the requested one
            max_tokens: Fallback max_tokens when the request sets none

        Returns:
            ClaudeMessagesRequest in Anthropic format
        """
        ...

    @abstractmethod
    def response_from_anthropic(
        self,
        response: ClaudeMessagesResponse,
    ) -> dict[str, Any]:
        """
        Convert an Anthropic Messages response to this format for the client.

        Args:
            response: ClaudeMessagesResponse in Anthropic format

        Returns:
            Response payload in this converter's format
        """
        ...


class BaseStreamingConverter(ABC):
    """Abstract base class for streaming format converters."""

    @abstractmethod
    def stream_from_anthropic(
        self,
        stream: AsyncIterator[str],
        model: str = "",
    ) -> AsyncIterator[str]:
        """
        Convert an Anthropic SSE stream to this format for the client.

        Args:
            stream: Async iterator of raw Anthropic SSE text chunks
            model: Model name reported in the converted chunks

        Yields:
            SSE-formatted strings in this converter's format
        """
        ...
