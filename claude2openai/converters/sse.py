"""
Incremental decoding of Server-Sent Events.

Upstream text arrives in arbitrary chunks: one chunk may hold several events,
and an event may be split across chunks.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class SSEEvent:
    event: str | None
    data: str

    def json(self) -> dict[str, Any] | None:
        """Parse ``data`` as a JSON object, or return None."""
        if not self.data or self.data == "[DONE]":
            return None
        try:
            payload = json.loads(self.data)
        except json.JSONDecodeError:
            logger.warning(f"Skipping unparseable SSE data: {self.data[:200]}")
            return None
        return payload if isinstance(payload, dict) else None


class SSEDecoder:
    """Accumulate text chunks and yield complete events."""

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> Iterator[SSEEvent]:
        # A trailing "\r" is normalized once its "\n" arrives
        self._buffer = (self._buffer + chunk).replace("\r\n", "\n")
        while "\n\n" in self._buffer:
            raw_event, self._buffer = self._buffer.split("\n\n", 1)
            event = self._parse(raw_event)
            if event is not None:
                yield event

    def flush(self) -> Iterator[SSEEvent]:
        """Yield an event left without its terminating blank line."""
        raw_event, self._buffer = self._buffer, ""
        if raw_event.strip():
            event = self._parse(raw_event)
            if event is not None:
                yield event

    @staticmethod
    def _parse(raw_event: str) -> SSEEvent | None:
        event_name = None
        data_lines = []
        for line in raw_event.split("\n"):
            if not line or line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if field == "event":
                event_name = value
            elif field == "data":
                data_lines.append(value)
        if event_name is None and not data_lines:
            return None
        return SSEEvent(event=event_name, data="\n".join(data_lines))


async def iter_sse_events(chunks: AsyncIterator[str]) -> AsyncIterator[SSEEvent]:
    decoder = SSEDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event


def format_sse(payload: dict[str, Any] | str) -> str:
    """Format one ``data:`` event for an OpenAI-style stream."""
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n"
