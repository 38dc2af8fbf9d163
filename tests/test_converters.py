"""
Unit tests for OpenAI ↔ Anthropic request/response conversion.

Tests cover:
- System message extraction and joining
- Tool definitions, tool choice, tool calls and tool results
- Image content parts
- max_tokens precedence
- Non-streaming response conversion and finish reasons
"""

import json
import unittest

import pytest

from claude2openai.converters import OpenAIConverter, map_finish_reason
from claude2openai.errors import InvalidRequestError
from claude2openai.types import (
    ClaudeContentBlockImage,
    ClaudeContentBlockText,
    ClaudeContentBlockToolResult,
    ClaudeContentBlockToolUse,
    ClaudeMessagesResponse,
    ClaudeToolChoiceAny,
    ClaudeToolChoiceTool,
    ModelDefaults,
)


class TestRequestToAnthropic(unittest.TestCase):
    """Test cases for OpenAIConverter.request_to_anthropic."""

    def setUp(self):
        self.converter = OpenAIConverter()

    def test_basic_user_message(self):
        """Test a single user message passes through with the chosen model."""
        result = self.converter.request_to_anthropic(
            {"model": "gpt-4", "messages": [{"role": "user", "content": "Hello"}]},
            model="claude-3-haiku-20240307",
        )

        self.assertEqual(result.model, "claude-3-haiku-20240307")
        self.assertEqual(len(result.messages), 1)
        self.assertEqual(result.messages[0].role, "user")
        self.assertEqual(result.messages[0].content, "Hello")
        self.assertIsNone(result.system)
        self.assertFalse(result.stream)

    def test_default_max_tokens(self):
        """Test max_tokens defaults to 4096 when nothing sets it."""
        result = self.converter.request_to_anthropic(
            {"messages": [{"role": "user", "content": "Hi"}]}
        )
        self.assertEqual(result.max_tokens, ModelDefaults.DEFAULT_MAX_TOKENS)
        self.assertEqual(result.max_tokens, 4096)

    def test_max_tokens_precedence(self):
        """Test request max_tokens wins over max_completion_tokens and model default."""
        messages = [{"role": "user", "content": "Hi"}]

        result = self.converter.request_to_anthropic(
            {"messages": messages, "max_tokens": 100, "max_completion_tokens": 200},
            max_tokens=300,
        )
        self.assertEqual(result.max_tokens, 100)

        result = self.converter.request_to_anthropic(
            {"messages": messages, "max_completion_tokens": 200}, max_tokens=300
        )
        self.assertEqual(result.max_tokens, 200)

        result = self.converter.request_to_anthropic({"messages": messages}, max_tokens=300)
        self.assertEqual(result.max_tokens, 300)

    def test_system_messages_joined(self):
        """Test system messages are removed from messages and joined with newlines."""
        result = self.converter.request_to_anthropic({
            "messages": [
                {"role": "system", "content": "You are helpful."},
                {"role": "user", "content": "Hi"},
                {"role": "system", "content": [{"type": "text", "text": "Be brief."}]},
            ]
        })

        self.assertEqual(result.system, "You are helpful.\nBe brief.")
        self.assertEqual([m.role for m in result.messages], ["user"])

    def test_only_system_messages_rejected(self):
        """Test a request without any conversation message is rejected."""
        with self.assertRaises(InvalidRequestError) as ctx:
            self.converter.request_to_anthropic(
                {"messages": [{"role": "system", "content": "Only system"}]}
            )
        self.assertEqual(ctx.exception.status_code, 400)

    def test_unknown_role_rejected(self):
        """Test an unsupported role raises InvalidRequestError."""
        with self.assertRaises(InvalidRequestError):
            self.converter.request_to_anthropic(
                {"messages": [{"role": "wizard", "content": "Hi"}]}
            )

    def test_empty_assistant_message_skipped(self):
        """Test an assistant turn with no content and no tool calls is dropped."""
        result = self.converter.request_to_anthropic(
            {
                "messages": [
                    {"role": "user", "content": "Hi"},
                    {"role": "assistant", "content": None},
                    {"role": "assistant", "content": ""},
                    {"role": "user", "content": "Still there?"},
                ]
            }
        )

        self.assertEqual([m.role for m in result.messages], ["user", "user"])
        self.assertNotIn("assistant", [m["role"] for m in result.to_payload()["messages"]])

    def test_sampling_parameters(self):
        """Test temperature, top_p and stop are mapped."""
        result = self.converter.request_to_anthropic({
            "messages": [{"role": "user", "content": "Hi"}],
            "temperature": 0.3,
            "top_p": 0.9,
            "stop": "END",
        })

        self.assertEqual(result.temperature, 0.3)
        self.assertEqual(result.top_p, 0.9)
        self.assertEqual(result.stop_sequences, ["END"])

    def test_unset_fields_omitted_from_payload(self):
        """Test optional fields are left out of the upstream payload."""
        payload = self.converter.request_to_anthropic(
            {"messages": [{"role": "user", "content": "Hi"}]}, model="claude-3-opus-20240229"
        ).to_payload()

        self.assertEqual(
            set(payload), {"model", "max_tokens", "messages", "stream"}
        )

    def test_tools_and_tool_choice(self):
        """Test OpenAI function tools become Claude tools."""
        result = self.converter.request_to_anthropic({
            "messages": [{"role": "user", "content": "Weather?"}],
            "tools": [{
                "type": "function",
                "function": {
                    "name": "get_weather",
                    "description": "Get weather",
                    "parameters": {"type": "object", "properties": {"city": {"type": "string"}}},
                },
            }],
            "tool_choice": {"type": "function", "function": {"name": "get_weather"}},
        })

        self.assertEqual(len(result.tools), 1)
        self.assertEqual(result.tools[0].name, "get_weather")
        self.assertEqual(result.tools[0].input_schema["properties"]["city"]["type"], "string")
        self.assertIsInstance(result.tool_choice, ClaudeToolChoiceTool)
        self.assertEqual(result.tool_choice.name, "get_weather")

    def test_tool_choice_required(self):
        """Test tool_choice 'required' maps to Claude 'any'."""
        result = self.converter.request_to_anthropic({
            "messages": [{"role": "user", "content": "Hi"}],
            "tool_choice": "required",
        })
        self.assertIsInstance(result.tool_choice, ClaudeToolChoiceAny)

    def test_assistant_tool_calls_and_results(self):
        """Test tool calls and consecutive tool results round out a conversation."""
        result = self.converter.request_to_anthropic({
            "messages": [
                {"role": "user", "content": "Weather in Paris and Rome?"},
                {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "call_1",
                            "type": "function",
                            "function": {"name": "get_weather", "arguments": '{"city": "Paris"}'},
                        },
                        {
                            "id": "call_2",
                            "type": "function",
                            "function": {"name": "get_weather", "arguments": '{"city": "Rome"}'},
                        },
                    ],
                },
                {"role": "tool", "tool_call_id": "call_1", "content": "Sunny"},
                {"role": "tool", "tool_call_id": "call_2", "content": "Rainy"},
            ]
        })

        self.assertEqual([m.role for m in result.messages], ["user", "assistant", "user"])

        assistant_blocks = result.messages[1].content
        self.assertEqual(len(assistant_blocks), 2)
        self.assertIsInstance(assistant_blocks[0], ClaudeContentBlockToolUse)
        self.assertEqual(assistant_blocks[0].id, "call_1")
        self.assertEqual(assistant_blocks[0].input, {"city": "Paris"})

        results = result.messages[2].content
        self.assertEqual(len(results), 2)
        self.assertTrue(all(isinstance(b, ClaudeContentBlockToolResult) for b in results))
        self.assertEqual([b.tool_use_id for b in results], ["call_1", "call_2"])
        self.assertEqual(results[1].content, "Rainy")

    def test_invalid_tool_arguments_become_empty_input(self):
        """Test unparseable tool call arguments do not fail the request."""
        result = self.converter.request_to_anthropic({
            "messages": [
                {"role": "user", "content": "Hi"},
                {
                    "role": "assistant",
                    "tool_calls": [{
                        "id": "call_1",
                        "type": "function",
                        "function": {"name": "f", "arguments": "{not json"},
                    }],
                },
            ]
        })
        self.assertEqual(result.messages[1].content[0].input, {})

    def test_image_parts(self):
        """Test data URL and remote image parts become Claude image blocks."""
        result = self.converter.request_to_anthropic({
            "messages": [{
                "role": "user",
                "content": [
                    {"type": "text", "text": "What is this?"},
                    {"type": "image_url", "image_url": {"url": "data:image/png;base64,iVBORw0KGgo="}},
                    {"type": "image_url", "image_url": {"url": "https://example.com/cat.jpg"}},
                ],
            }]
        })

        blocks = result.messages[0].content
        self.assertIsInstance(blocks[0], ClaudeContentBlockText)
        self.assertIsInstance(blocks[1], ClaudeContentBlockImage)
        self.assertEqual(blocks[1].source.type, "base64")
        self.assertEqual(blocks[1].source.media_type, "image/png")
        self.assertEqual(blocks[1].source.data, "iVBORw0KGgo=")
        self.assertEqual(blocks[2].source.type, "url")
        self.assertEqual(blocks[2].source.url, "https://example.com/cat.jpg")


class TestResponseFromAnthropic(unittest.TestCase):
    """Test cases for OpenAIConverter.response_from_anthropic."""

    def setUp(self):
        self.converter = OpenAIConverter()

    def _response(self, content, stop_reason="end_turn", usage=None):
        return ClaudeMessagesResponse.model_validate({
            "id": "msg_abc123",
            "type": "message",
            "role": "assistant",
            "model": "claude-3-haiku-20240307",
            "content": content,
            "stop_reason": stop_reason,
            "usage": usage or {"input_tokens": 12, "output_tokens": 5},
        })

    def test_text_response(self):
        """Test a text reply becomes a chat.completion with usage."""
        result = self.converter.response_from_anthropic(
            self._response([{"type": "text", "text": "Hello there"}])
        )

        self.assertEqual(result["object"], "chat.completion")
        self.assertEqual(result["id"], "chatcmpl-abc123")
        self.assertEqual(result["model"], "claude-3-haiku-20240307")
        choice = result["choices"][0]
        self.assertEqual(choice["index"], 0)
        self.assertEqual(choice["message"], {"role": "assistant", "content": "Hello there"})
        self.assertEqual(choice["finish_reason"], "stop")
        self.assertEqual(
            result["usage"], {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17}
        )

    def test_multiple_text_blocks_concatenated(self):
        result = self.converter.response_from_anthropic(
            self._response([{"type": "text", "text": "Hello "}, {"type": "text", "text": "world"}])
        )
        self.assertEqual(result["choices"][0]["message"]["content"], "Hello world")

    def test_tool_use_response(self):
        """Test tool_use blocks become tool_calls with JSON string arguments."""
        result = self.converter.response_from_anthropic(
            self._response(
                [{"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"city": "Paris"}}],
                stop_reason="tool_use",
            )
        )

        message = result["choices"][0]["message"]
        self.assertIsNone(message["content"])
        self.assertEqual(message["tool_calls"][0]["id"], "toolu_1")
        self.assertEqual(message["tool_calls"][0]["function"]["name"], "get_weather")
        self.assertEqual(json.loads(message["tool_calls"][0]["function"]["arguments"]), {"city": "Paris"})
        self.assertEqual(result["choices"][0]["finish_reason"], "tool_calls")

    def test_empty_content(self):
        """Test a reply without blocks still carries an empty string."""
        result = self.converter.response_from_anthropic(self._response([]))
        self.assertEqual(result["choices"][0]["message"]["content"], "")

    def test_unknown_blocks_dropped(self):
        result = self.converter.response_from_anthropic(
            self._response([
                {"type": "redacted_thinking", "data": "xyz"},
                {"type": "text", "text": "ok"},
            ])
        )
        self.assertEqual(result["choices"][0]["message"]["content"], "ok")


@pytest.mark.parametrize(
    "stop_reason,expected",
    [
        ("end_turn", "stop"),
        ("stop_sequence", "stop"),
        ("max_tokens", "length"),
        ("tool_use", "tool_calls"),
        (None, "stop"),
        ("something_new", "stop"),
    ],
)
def test_map_finish_reason(stop_reason, expected):
    assert map_finish_reason(stop_reason) == expected
