"""Normalize heterogeneous message payloads into ThreadMessage."""

import json
import logging
import math
import re
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from langchain_core.load import dumpd
from langchain_core.messages import BaseMessage
from pydantic import ValidationError

from ..models.message_models import (
    ContentSegment,
    DataSegment,
    MessageRole,
    TextSegment,
    ThreadMessage,
    ToolCallInfo,
    generate_message_id,
)

logger = logging.getLogger(__name__)

VALID_ROLES = ("user", "assistant", "system", "tool")

# Serialized LangChain class names
ENVELOPE_ROLES: Dict[str, MessageRole] = {
    "HumanMessage": "user",
    "HumanMessageChunk": "user",
    "SystemMessage": "system",
    "SystemMessageChunk": "system",
    "AIMessage": "assistant",
    "AIMessageChunk": "assistant",
    "ChatMessage": "assistant",
    "ToolMessage": "tool",
    "ToolMessageChunk": "tool",
    "FunctionMessage": "tool",
}

TYPE_ROLES: Dict[str, MessageRole] = {
    "human": "user",
    "humanmessage": "user",
    "humanmessagechunk": "user",
    "ai": "assistant",
    "aimessage": "assistant",
    "aimessagechunk": "assistant",
    "chatmessage": "assistant",
    "system": "system",
    "systemmessage": "system",
    "tool": "tool",
    "toolmessage": "tool",
    "function": "tool",
    "functionmessage": "tool",
}

_FRACTION = re.compile(r"(\.\d{6})\d+")


def canonicalize_message(value: Any) -> ThreadMessage:
    """
    Convert an arbitrary message payload into a ThreadMessage.

    Recognizers are tried in order and the first match wins:
    canonical messages, serialized LangChain envelopes, dicts with a
    ``role`` field, dicts with a ``type`` field, bare strings, and
    finally any other value as a structured assistant segment.

    Args:
        value: Message payload from any producer

    Returns:
        Canonical ThreadMessage (never with empty content)
    """
    if isinstance(value, ThreadMessage):
        return value

    raw = value
    if isinstance(value, BaseMessage):
        value = dumpd(value)

    if isinstance(value, dict):
        canonical = _from_canonical_dict(value)
        if canonical is not None:
            return canonical
        if isinstance(value.get("kwargs"), dict):
            return _from_envelope(value, raw)
        if isinstance(value.get("role"), str):
            return _from_role_dict(value, raw)
        if isinstance(value.get("type"), str):
            return _from_type_dict(value, raw)

    if isinstance(value, str):
        return ThreadMessage(
            role="assistant",
            content=[TextSegment(text=value)],
            raw=raw,
        )

    return ThreadMessage(
        role="assistant",
        content=[DataSegment(data=value)],
        raw=raw,
    )


def canonicalize_messages(values: Optional[Iterable[Any]]) -> List[ThreadMessage]:
    """Canonicalize every message in a sequence."""
    if not values:
        return []
    return [canonicalize_message(value) for value in values]


def get_message_text(message: ThreadMessage) -> str:
    """
    Join the non-blank text segments of a message.

    Args:
        message: Canonical message

    Returns:
        Trimmed text segments joined by newlines
    """
    parts = []
    for segment in message.content:
        if isinstance(segment, TextSegment):
            text = segment.text.strip()
            if text:
                parts.append(text)
    return "\n".join(parts)


def extract_content(content: Any) -> List[ContentSegment]:
    """
    Flatten a content payload into segments.

    GOTCHA: absent content yields a single empty text segment
    """
    segments: List[ContentSegment] = []
    _append_content(segments, content)
    if not segments:
        segments.append(TextSegment(text=""))
    return segments


def _append_content(segments: List[ContentSegment], content: Any) -> None:
    if content is None:
        return
    if isinstance(content, str):
        segments.append(TextSegment(text=content))
        return
    if isinstance(content, (list, tuple)):
        for item in content:
            _append_content(segments, item)
        return
    if isinstance(content, dict):
        text = content.get("text")
        block_type = content.get("type")
        if isinstance(text, str) and block_type in (None, "text"):
            segments.append(TextSegment(text=text))
            return
        if block_type is None and "content" in content:
            _append_content(segments, content["content"])
            return
    segments.append(DataSegment(data=content))


def _from_canonical_dict(value: Dict[str, Any]) -> Optional[ThreadMessage]:
    """Validate dicts that already carry the canonical shape."""
    if value.get("role") not in VALID_ROLES or not isinstance(value.get("content"), list):
        return None
    if not value["content"]:
        return None
    for segment in value["content"]:
        if not isinstance(segment, dict) or segment.get("type") not in ("text", "json"):
            return None
    try:
        return ThreadMessage.model_validate(value)
    except ValidationError:
        return None


def _envelope_class_name(value: Dict[str, Any]) -> Optional[str]:
    identifier = value.get("id")
    if isinstance(identifier, list) and identifier:
        last = identifier[-1]
        return last if isinstance(last, str) else None
    if isinstance(identifier, str):
        return identifier.rsplit(":", 1)[-1]
    return None


def _from_envelope(value: Dict[str, Any], raw: Any) -> ThreadMessage:
    """Handle serialized LangChain messages ({lc, type, id, kwargs})."""
    kwargs: Dict[str, Any] = value["kwargs"]
    class_name = _envelope_class_name(value)
    role = ENVELOPE_ROLES.get(class_name or "", "assistant")

    additional = kwargs.get("additional_kwargs")
    additional = additional if isinstance(additional, dict) else {}
    response_metadata = kwargs.get("response_metadata")
    response_metadata = response_metadata if isinstance(response_metadata, dict) else {}

    metadata: Dict[str, Any] = {}
    if isinstance(kwargs.get("metadata"), dict):
        metadata.update(kwargs["metadata"])
    if response_metadata:
        metadata["response"] = response_metadata
    if isinstance(kwargs.get("usage_metadata"), dict):
        metadata["usage"] = kwargs["usage_metadata"]
    if additional:
        metadata["additional"] = additional

    function_call = additional.get("function_call")
    tool_calls = (
        _parse_tool_calls(additional.get("tool_calls"))
        or _parse_tool_calls([function_call] if isinstance(function_call, dict) else None)
        or _parse_tool_calls(kwargs.get("tool_calls"))
    )

    message_id = kwargs.get("id") or kwargs.get("tool_call_id") or generate_message_id()
    created = response_metadata.get("created_at", kwargs.get("created_at"))

    return ThreadMessage(
        id=str(message_id),
        role=role,
        content=extract_content(kwargs.get("content")),
        tool_calls=tool_calls,
        tool_call_id=_optional_str(kwargs.get("tool_call_id")),
        tool_name=_optional_str(kwargs.get("name")),
        metadata=metadata or None,
        timestamp=parse_timestamp(created),
        raw=raw,
    )


def _from_role_dict(value: Dict[str, Any], raw: Any) -> ThreadMessage:
    role_name = value["role"].lower()
    if role_name in VALID_ROLES:
        role = role_name
    elif role_name == "function":
        role = "tool"
    else:
        role = "assistant"
    return _from_plain_dict(value, role, raw)


def _from_type_dict(value: Dict[str, Any], raw: Any) -> ThreadMessage:
    role = TYPE_ROLES.get(value["type"].lower(), "assistant")
    return _from_plain_dict(value, role, raw)


def _from_plain_dict(value: Dict[str, Any], role: MessageRole, raw: Any) -> ThreadMessage:
    calls = value.get("toolCalls", value.get("tool_calls"))
    metadata = value.get("metadata")
    return ThreadMessage(
        id=str(value.get("id") or generate_message_id()),
        role=role,
        content=extract_content(value.get("content")),
        tool_calls=_parse_tool_calls(calls),
        tool_call_id=_optional_str(value.get("toolCallId", value.get("tool_call_id"))),
        tool_name=_optional_str(value.get("toolName", value.get("name"))),
        metadata=metadata if isinstance(metadata, dict) else None,
        timestamp=parse_timestamp(value.get("timestamp")),
        raw=raw,
    )


def _parse_tool_calls(value: Any) -> Optional[List[ToolCallInfo]]:
    if not isinstance(value, list) or not value:
        return None
    calls = [
        _parse_tool_call(item, index)
        for index, item in enumerate(value)
        if isinstance(item, dict)
    ]
    return calls or None


def _parse_tool_call(value: Dict[str, Any], index: int) -> ToolCallInfo:
    function = value.get("function")
    function = function if isinstance(function, dict) else {}

    call_id = value.get("id") or function.get("id") or f"tool_call_{index}_{secrets.token_hex(4)}"
    name = function.get("name") or value.get("name") or "tool"

    arguments = function.get("arguments")
    if arguments is None:
        arguments = value.get("arguments")
    if arguments is None:
        arguments = value.get("args")

    description = value.get("description")
    return ToolCallInfo(
        id=str(call_id),
        name=str(name),
        arguments=parse_arguments(arguments),
        description=description if isinstance(description, str) else None,
    )


def parse_arguments(value: Any) -> Any:
    """
    Parse tool-call arguments, decoding JSON-looking strings.

    GOTCHA: argument shapes are provider-controlled, invalid JSON is kept as the raw string
    """
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith(("{", "[")):
            try:
                return parse_arguments(json.loads(stripped))
            except json.JSONDecodeError:
                return value
        return value
    if isinstance(value, list):
        return [parse_arguments(item) for item in value]
    if isinstance(value, dict):
        return {key: parse_arguments(item) for key, item in value.items()}
    return value


def parse_timestamp(value: Any) -> Optional[int]:
    """
    Convert a creation time into epoch milliseconds.

    Numbers below 1e11 are read as seconds, larger ones as milliseconds.
    ISO strings are parsed (naive values are taken as UTC).
    Unparseable or out-of-range input returns None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value * 1000) if value < 1e11 else int(value)
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = _FRACTION.sub(r"\1", value.strip()).replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Unparseable timestamp: {value!r}")
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return int(parsed.timestamp() * 1000)
    except (OverflowError, ValueError, OSError):
        logger.debug(f"Timestamp out of range: {value!r}")
        return None


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None
