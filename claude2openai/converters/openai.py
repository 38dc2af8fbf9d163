"""
OpenAI ↔ Anthropic converter.

Converts OpenAI Chat Completions requests to Anthropic Messages requests, and
Anthropic responses (plain and streamed) back to Chat Completions.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

from ..errors import InvalidRequestError, UpstreamError
from ..types import (
    ClaudeContentBlockImage,
    ClaudeContentBlockImageBase64Source,
    ClaudeContentBlockImageURLSource,
    ClaudeContentBlockText,
    ClaudeContentBlockThinking,
    ClaudeContentBlockToolResult,
    ClaudeContentBlockToolUse,
    ClaudeMessage,
    ClaudeMessagesRequest,
    ClaudeMessagesResponse,
    ClaudeTool,
    ClaudeToolChoiceAny,
    ClaudeToolChoiceAuto,
    ClaudeToolChoiceNone,
    ClaudeToolChoiceTool,
    ClaudeUsage,
    ModelDefaults,
    OpenAIChatMessage,
    OpenAIChatRequest,
    generate_unique_id,
)
from .base import BaseConverter, BaseStreamingConverter
from .sse import format_sse, iter_sse_events

logger = logging.getLogger(__name__)

FINISH_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
}


def map_finish_reason(stop_reason: str | None) -> str:
    return FINISH_REASONS.get(stop_reason or "", "stop")


def _parse_openai_tool_choice(tool_choice: Any) -> Any:
    """Convert OpenAI tool_choice to Claude tool_choice."""
    if tool_choice is None:
        return None
    if isinstance(tool_choice, str):
        if tool_choice == "auto":
            return ClaudeToolChoiceAuto()
        elif tool_choice == "required":
            return ClaudeToolChoiceAny()
        elif tool_choice == "none":
            return ClaudeToolChoiceNone()
    elif isinstance(tool_choice, dict) and tool_choice.get("type") == "function":
        name = (tool_choice.get("function") or {}).get("name", "")
        if name:
            return ClaudeToolChoiceTool(name=name)
    return None


def _parse_openai_tools(tools: list[dict[str, Any]] | None) -> list[ClaudeTool] | None:
    """Convert OpenAI function tools to Claude tools."""
    if not tools:
        return None

    claude_tools = []
    for tool in tools:
        if tool.get("type") != "function":
            continue
        function = tool.get("function") or {}
        claude_tools.append(
            ClaudeTool(
                name=function.get("name", ""),
                description=function.get("description"),
                input_schema=function.get("parameters") or {"type": "object", "properties": {}},
            )
        )
    return claude_tools or None


def _parse_image_url(url: str) -> ClaudeContentBlockImage | None:
    if not url.startswith("data:"):
        return ClaudeContentBlockImage(source=ClaudeContentBlockImageURLSource(url=url))

    # data:<media_type>;base64,<data>
    try:
        header, data = url.split(",", 1)
    except ValueError:
        logger.warning(f"Failed to parse data URL: {url[:50]}...")
        return None
    media_type = header[len("data:"):].split(";")[0]
    return ClaudeContentBlockImage(
        source=ClaudeContentBlockImageBase64Source(media_type=media_type, data=data)
    )


def _parse_openai_message_content(content: Any) -> str | list[Any]:
    """Convert OpenAI message content to Claude content."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content

    blocks: list[Any] = []
    for part in content:
        if not isinstance(part, dict):
            continue
        part_type = part.get("type")
        if part_type == "text":
            blocks.append(ClaudeContentBlockText(text=part.get("text", "")))
        elif part_type == "image_url":
            image_url = part.get("image_url") or {}
            url = image_url if isinstance(image_url, str) else image_url.get("url", "")
            image = _parse_image_url(url)
            if image is not None:
                blocks.append(image)
        else:
            logger.debug(f"Dropping unsupported content part type: {part_type}")
    return blocks or ""


def _content_as_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "".join(
        part.get("text", "") for part in content if isinstance(part, dict) and part.get("type") == "text"
    )


def _assistant_blocks(msg: OpenAIChatMessage) -> list[Any]:
    blocks: list[Any] = []

    parsed = _parse_openai_message_content(msg.content)
    if isinstance(parsed, list):
        blocks.extend(parsed)
    elif parsed:
        blocks.append(ClaudeContentBlockText(text=parsed))

    for tool_call in msg.tool_calls or []:
        function = tool_call.get("function") or {}
        arguments = function.get("arguments") or "{}"
        try:
            args = json.loads(arguments) if isinstance(arguments, str) else arguments
        except json.JSONDecodeError:
            logger.warning(f"Invalid tool call arguments for {function.get('name')}: {arguments[:200]}")
            args = {}
        blocks.append(
            ClaudeContentBlockToolUse(
                id=tool_call.get("id") or generate_unique_id("toolu"),
                name=function.get("name", ""),
                input=args if isinstance(args, dict) else {"value": args},
            )
        )
    return blocks


def _parse_openai_messages(
    messages: list[OpenAIChatMessage],
) -> tuple[str | None, list[ClaudeMessage]]:
    """
    Convert OpenAI messages to Claude messages.

    System messages are pulled out of the conversation and joined with newlines.

    Returns:
        tuple of (system_prompt, messages)
    """
    system_parts: list[str] = []
    claude_messages: list[ClaudeMessage] = []

    for msg in messages:
        role = msg.role

        if role in ("system", "developer"):
            system_parts.append(_content_as_text(msg.content))

        elif role == "user":
            claude_messages.append(
                ClaudeMessage(role="user", content=_parse_openai_message_content(msg.content))
            )

        elif role == "assistant":
            blocks = _assistant_blocks(msg)
            if not blocks:
                # Anthropic rejects empty assistant turns
                logger.debug("Skipping assistant message without content or tool calls")
                continue
            claude_messages.append(ClaudeMessage(role="assistant", content=blocks))

        elif role == "tool":
            tool_result = ClaudeContentBlockToolResult(
                tool_use_id=msg.tool_call_id or "",
                content=_content_as_text(msg.content),
            )
            # Consecutive tool results share one user turn
            last = claude_messages[-1] if claude_messages else None
            if last is not None and last.role == "user" and isinstance(last.content, list) and all(
                isinstance(block, ClaudeContentBlockToolResult) for block in last.content
            ):
                last.content.append(tool_result)
            else:
                claude_messages.append(ClaudeMessage(role="user", content=[tool_result]))

        else:
            raise InvalidRequestError(f"Unsupported message role: '{role}'")

    system_prompt = "\n".join(part for part in system_parts if part) or None
    return system_prompt, claude_messages


class OpenAIConverter(BaseConverter):
    """
    Converter between OpenAI Chat Completions and Anthropic Messages format.
    """

    def request_to_anthropic(
        self,
        payload: OpenAIChatRequest | dict[str, Any],
        *,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> ClaudeMessagesRequest:
        """Convert an OpenAI Chat Completions request to Anthropic Messages format."""
        if isinstance(payload, dict):
            payload = OpenAIChatRequest.model_validate(payload)

        system_prompt, claude_messages = _parse_openai_messages(payload.messages)
        if not claude_messages:
            raise InvalidRequestError("At least one non-system message is required")

        request_data: dict[str, Any] = {
            "model": model or payload.model,
            "max_tokens": payload.max_tokens
            or payload.max_completion_tokens
            or max_tokens
            or ModelDefaults.DEFAULT_MAX_TOKENS,
            "messages": claude_messages,
            "stream": payload.stream,
        }

        if system_prompt:
            request_data["system"] = system_prompt
        if payload.temperature is not None:
            request_data["temperature"] = payload.temperature
        if payload.top_p is not None:
            request_data["top_p"] = payload.top_p
        if payload.stop:
            request_data["stop_sequences"] = payload.stop if isinstance(payload.stop, list) else [payload.stop]

        claude_tools = _parse_openai_tools(payload.tools)
        if claude_tools:
            request_data["tools"] = claude_tools

        claude_tool_choice = _parse_openai_tool_choice(payload.tool_choice)
        if claude_tool_choice:
            request_data["tool_choice"] = claude_tool_choice

        return ClaudeMessagesRequest.model_validate(request_data)

    def response_from_anthropic(
        self,
        response: ClaudeMessagesResponse,
    ) -> dict[str, Any]:
        """Convert an Anthropic response to an OpenAI ``chat.completion``."""
        content = None
        tool_calls = []
        reasoning_content = None

        for block in response.content:
            if isinstance(block, ClaudeContentBlockText):
                content = block.text if content is None else content + block.text
            elif isinstance(block, ClaudeContentBlockThinking):
                reasoning_content = block.thinking
            elif isinstance(block, ClaudeContentBlockToolUse):
                tool_calls.append({
                    "id": block.id,
                    "type": "function",
                    "function": {
                        "name": block.name,
                        "arguments": json.dumps(block.input, ensure_ascii=False),
                    },
                })

        message: dict[str, Any] = {
            "role": "assistant",
            "content": content if content is not None or tool_calls else "",
        }
        if tool_calls:
            message["tool_calls"] = tool_calls
        if reasoning_content:
            message["reasoning_content"] = reasoning_content

        usage = response.usage
        return {
            "id": response.id.replace("msg_", "chatcmpl-", 1),
            "object": "chat.completion",
            "created": int(time.time()),
            "model": response.model,
            "choices": [{
                "index": 0,
                "message": message,
                "logprobs": None,
                "finish_reason": map_finish_reason(response.stop_reason),
            }],
            "usage": {
                "prompt_tokens": usage.input_tokens,
                "completion_tokens": usage.output_tokens,
                "total_tokens": usage.input_tokens + usage.output_tokens,
            },
        }


class OpenAIStreamingConverter(BaseStreamingConverter):
    """
    Streaming converter from Anthropic SSE events to OpenAI chunks.

    Anthropic events:
    - message_start: {type: "message_start", message: {...}}
    - content_block_start: {type: "content_block_start", index: N, content_block: {...}}
    - content_block_delta: {type: "content_block_delta", index: N, delta: {...}}
    - message_delta: {type: "message_delta", delta: {...}, usage: {...}}
    - message_stop: {type: "message_stop"}
    - error: {type: "error", error: {...}}

    OpenAI events:
    - data: {id, object: "chat.completion.chunk", choices: [{index, delta, finish_reason}], ...}
    - data: [DONE]

    After the stream ends, ``usage`` holds the token counts seen in it.
    """

    def __init__(self):
        self.completion_id = generate_unique_id("chatcmpl")
        self.created = int(time.time())
        self.usage = ClaudeUsage()
        self.error: UpstreamError | None = None
        # content block index -> OpenAI tool_calls index
        self._tool_indexes: dict[int, int] = {}

    def _chunk(
        self,
        model: str,
        delta: dict[str, Any],
        finish_reason: str | None = None,
    ) -> dict[str, Any]:
        return {
            "id": self.completion_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": model,
            "choices": [{
                "index": 0,
                "delta": delta,
                "logprobs": None,
                "finish_reason": finish_reason,
            }],
        }

    def _usage_payload(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.usage.input_tokens,
            "completion_tokens": self.usage.output_tokens,
            "total_tokens": self.usage.input_tokens + self.usage.output_tokens,
        }

    async def stream_from_anthropic(
        self,
        stream: AsyncIterator[str],
        model: str = "",
    ) -> AsyncIterator[str]:
        done = False

        async for sse_event in iter_sse_events(stream):
            event = sse_event.json()
            if event is None:
                continue

            event_type = event.get("type") or sse_event.event or ""

            if event_type == "message_start":
                message = event.get("message") or {}
                self.usage.input_tokens = (message.get("usage") or {}).get("input_tokens", 0)
                model = model or message.get("model", "")
                yield format_sse(self._chunk(model, {"role": "assistant", "content": ""}))

            elif event_type == "content_block_start":
                block = event.get("content_block") or {}
                if block.get("type") == "tool_use":
                    tool_index = len(self._tool_indexes)
                    self._tool_indexes[event.get("index", 0)] = tool_index
                    yield format_sse(self._chunk(model, {
                        "tool_calls": [{
                            "index": tool_index,
                            "id": block.get("id") or generate_unique_id("toolu"),
                            "type": "function",
                            "function": {"name": block.get("name", ""), "arguments": ""},
                        }]
                    }))

            elif event_type == "content_block_delta":
                delta = event.get("delta") or {}
                delta_type = delta.get("type")

                if delta_type == "text_delta" and delta.get("text"):
                    yield format_sse(self._chunk(model, {"content": delta["text"]}))

                elif delta_type == "input_json_delta" and delta.get("partial_json"):
                    tool_index = self._tool_indexes.get(event.get("index", 0))
                    if tool_index is not None:
                        yield format_sse(self._chunk(model, {
                            "tool_calls": [{
                                "index": tool_index,
                                "function": {"arguments": delta["partial_json"]},
                            }]
                        }))

                elif delta_type == "thinking_delta" and delta.get("thinking"):
                    yield format_sse(self._chunk(model, {"reasoning_content": delta["thinking"]}))

            elif event_type == "message_delta":
                usage = event.get("usage") or {}
                if "output_tokens" in usage:
                    self.usage.output_tokens = usage["output_tokens"]
                if usage.get("input_tokens"):
                    self.usage.input_tokens = usage["input_tokens"]

                stop_reason = (event.get("delta") or {}).get("stop_reason")
                chunk = self._chunk(model, {}, map_finish_reason(stop_reason))
                chunk["usage"] = self._usage_payload()
                yield format_sse(chunk)

            elif event_type == "message_stop":
                done = True
                break

            elif event_type == "error":
                self.error = UpstreamError.from_event(event)
                logger.error(
                    f"Claude API streaming error: {self.error.error_type}: {self.error.message}"
                )
                yield format_sse(self.error.to_openai_error())
                done = True
                break

        if not done:
            logger.warning("Claude API stream ended without message_stop")
        yield format_sse("[DONE]")
