"""Tests for the message canonicalizer."""

import pytest
from langchain_core.load import dumpd
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from agent_runtime.messages import (
    canonicalize_message,
    canonicalize_messages,
    extract_content,
    get_message_text,
    parse_arguments,
    parse_timestamp,
)
from agent_runtime.models import DataSegment, TextSegment, ThreadMessage


class TestRecognizers:
    """Test suite for recognizer dispatch."""

    def test_bare_string(self):
        """Test a bare string becomes one assistant text segment."""
        message = canonicalize_message("hello")

        assert message.role == "assistant"
        assert message.content == [TextSegment(text="hello")]
        assert message.id.startswith("msg_")

    def test_type_human(self):
        """Test a type-only dict maps human to user."""
        message = canonicalize_message({"type": "human", "content": "hi"})

        assert message.role == "user"
        assert get_message_text(message) == "hi"

    @pytest.mark.parametrize(
        "type_name,role",
        [
            ("AIMessageChunk", "assistant"),
            ("system", "system"),
            ("ToolMessage", "tool"),
            ("function", "tool"),
            ("HumanMessageChunk", "user"),
            ("something-else", "assistant"),
        ],
    )
    def test_type_table(self, type_name, role):
        """Test the type-field role table, case-insensitively."""
        assert canonicalize_message({"type": type_name, "content": "x"}).role == role

    @pytest.mark.parametrize(
        "role_name,role",
        [
            ("USER", "user"),
            ("Assistant", "assistant"),
            ("function", "tool"),
            ("developer", "assistant"),
        ],
    )
    def test_role_field(self, role_name, role):
        """Test direct role fields are normalized, unknown roles become assistant."""
        assert canonicalize_message({"role": role_name, "content": "x"}).role == role

    def test_canonical_instance_is_identity(self):
        """Test an already canonical message is returned unchanged."""
        message = ThreadMessage(role="user", content=[TextSegment(text="hi")])

        assert canonicalize_message(message) is message

    def test_canonical_dict_keeps_fields(self):
        """Test a canonical dict keeps its id and segments."""
        payload = {
            "id": "m1",
            "role": "tool",
            "content": [{"type": "text", "text": "42"}, {"type": "json", "data": {"a": 1}}],
            "toolCallId": "call_1",
        }

        message = canonicalize_message(payload)

        assert message.id == "m1"
        assert message.tool_call_id == "call_1"
        assert message.content == [TextSegment(text="42"), DataSegment(data={"a": 1})]

    def test_role_dict_with_openai_blocks_is_not_passthrough(self):
        """Test provider content blocks are converted rather than passed through."""
        message = canonicalize_message(
            {"role": "user", "content": [{"type": "image_url", "image_url": {"url": "x"}}]}
        )

        assert message.role == "user"
        assert isinstance(message.content[0], DataSegment)

    def test_fallback_structured(self):
        """Test unrecognized values become a structured assistant segment."""
        message = canonicalize_message(42)

        assert message.role == "assistant"
        assert message.content == [DataSegment(data=42)]
        assert message.raw == 42

    @pytest.mark.parametrize(
        "value",
        [
            None,
            "",
            [],
            {},
            {"role": "user"},
            {"type": "ai", "content": None},
            {"kwargs": {}},
            3.5,
            {"role": "user", "content": "hi", "timestamp": float("nan")},
            {"role": "user", "content": "hi", "timestamp": float("-inf")},
            {
                "lc": 1,
                "type": "constructor",
                "id": ["langchain_core", "messages", "AIMessage"],
                "kwargs": {"content": "hi", "response_metadata": {"created_at": float("inf")}},
            },
        ],
    )
    def test_content_never_empty(self, value):
        """Test every input yields at least one segment."""
        assert len(canonicalize_message(value).content) >= 1

    def test_absent_content_is_empty_text(self):
        """Test absent content yields a single empty text segment."""
        message = canonicalize_message({"role": "assistant"})

        assert message.content == [TextSegment(text="")]

    def test_canonicalize_messages(self):
        """Test list canonicalization preserves order and tolerates None."""
        messages = canonicalize_messages(["a", {"type": "human", "content": "b"}])

        assert [m.role for m in messages] == ["assistant", "user"]
        assert canonicalize_messages(None) == []


class TestEnvelopes:
    """Test suite for serialized LangChain messages."""

    def test_ai_message_object(self):
        """Test live AIMessage objects go through the envelope path."""
        message = canonicalize_message(
            AIMessage(
                content="Sure.",
                id="run-1",
                response_metadata={"model_name": "gpt-4o-mini", "created_at": "2024-05-01T12:00:00Z"},
                usage_metadata={"input_tokens": 3, "output_tokens": 2, "total_tokens": 5},
            )
        )

        assert message.role == "assistant"
        assert message.id == "run-1"
        assert get_message_text(message) == "Sure."
        assert message.metadata["response"]["model_name"] == "gpt-4o-mini"
        assert message.metadata["usage"]["total_tokens"] == 5
        assert message.timestamp == 1714564800000

    def test_human_system_tool_envelopes(self):
        """Test class names map onto roles."""
        assert canonicalize_message(dumpd(HumanMessage(content="q"))).role == "user"
        assert canonicalize_message(dumpd(SystemMessage(content="s"))).role == "system"

        tool = canonicalize_message(dumpd(ToolMessage(content="72F", tool_call_id="call_9", name="weather")))
        assert tool.role == "tool"
        assert tool.tool_call_id == "call_9"
        assert tool.tool_name == "weather"
        assert tool.id == "call_9"

    def test_string_id_discriminator(self):
        """Test a string id uses the text after the last colon."""
        message = canonicalize_message(
            {"lc": 1, "type": "constructor", "id": "langchain:HumanMessage", "kwargs": {"content": "x"}}
        )

        assert message.role == "user"

    def test_unknown_class_defaults_to_assistant(self):
        """Test unknown envelope class names default to assistant."""
        message = canonicalize_message({"id": ["x", "Mystery"], "kwargs": {"content": "x"}})

        assert message.role == "assistant"

    def test_tool_calls_from_kwargs(self):
        """Test parsed tool calls are read from kwargs."""
        message = canonicalize_message(
            AIMessage(content="", tool_calls=[{"name": "search", "args": {"q": "cats"}, "id": "call_1"}])
        )

        assert len(message.tool_calls) == 1
        assert message.tool_calls[0].id == "call_1"
        assert message.tool_calls[0].name == "search"
        assert message.tool_calls[0].arguments == {"q": "cats"}

    def test_tool_calls_from_additional_kwargs(self):
        """Test raw OpenAI tool calls in additional_kwargs win and their arguments are parsed."""
        envelope = {
            "id": ["langchain", "schema", "messages", "AIMessage"],
            "kwargs": {
                "content": "",
                "additional_kwargs": {
                    "tool_calls": [
                        {"id": "call_7", "function": {"name": "lookup", "arguments": '{"k": "[1, 2]"}'}}
                    ]
                },
            },
        }

        message = canonicalize_message(envelope)

        assert message.tool_calls[0].id == "call_7"
        assert message.tool_calls[0].name == "lookup"
        assert message.tool_calls[0].arguments == {"k": [1, 2]}
        assert "additional" in message.metadata

    def test_single_function_call(self):
        """Test a legacy function_call field yields one tool call."""
        envelope = {
            "id": ["AIMessage"],
            "kwargs": {
                "content": "",
                "additional_kwargs": {"function_call": {"name": "calc", "arguments": "{bad json"}},
            },
        }

        message = canonicalize_message(envelope)

        assert message.tool_calls[0].name == "calc"
        assert message.tool_calls[0].arguments == "{bad json"
        assert message.tool_calls[0].id.startswith("tool_call_0_")

    def test_metadata_none_when_empty(self):
        """Test messages without metadata bags report None."""
        assert canonicalize_message(dumpd(HumanMessage(content="q"))).metadata is None

    def test_anthropic_content_blocks(self):
        """Test text blocks become text and other blocks become structured segments."""
        message = canonicalize_message(
            AIMessage(
                content=[
                    {"type": "text", "text": "Let me check."},
                    {"type": "tool_use", "id": "tu_1", "name": "search", "input": {}},
                ]
            )
        )

        assert message.content[0] == TextSegment(text="Let me check.")
        assert isinstance(message.content[1], DataSegment)


class TestHelpers:
    """Test suite for content and argument helpers."""

    def test_extract_content_recurses(self):
        """Test nested lists and content fields are flattened."""
        segments = extract_content(["a", [{"text": "b"}, {"content": "c"}], None])

        assert segments == [TextSegment(text="a"), TextSegment(text="b"), TextSegment(text="c")]

    def test_get_message_text_skips_blank(self):
        """Test blank text segments are dropped and the rest are trimmed."""
        message = ThreadMessage(
            role="assistant",
            content=[TextSegment(text="  one "), TextSegment(text="   "), DataSegment(data=1), TextSegment(text="two")],
        )

        assert get_message_text(message) == "one\ntwo"

    def test_parse_arguments_keeps_plain_strings(self):
        """Test strings that do not look like JSON are kept."""
        assert parse_arguments("hello") == "hello"
        assert parse_arguments('["a", "{\\"b\\": 1}"]') == ["a", {"b": 1}]

    @pytest.mark.parametrize(
        "value,expected",
        [
            (1714564800, 1714564800000),
            (1714564800123, 1714564800123),
            ("2024-05-01T12:00:00.123456789Z", 1714564800123),
            ("not a date", None),
            (None, None),
            (True, None),
            (float("nan"), None),
            (float("inf"), None),
            (float("-inf"), None),
        ],
    )
    def test_parse_timestamp(self, value, expected):
        """Test timestamps from seconds, milliseconds and ISO strings."""
        assert parse_timestamp(value) == expected
