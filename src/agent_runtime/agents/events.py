"""Helpers for reading LangGraph stream events."""

from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple


def content_to_text(content: Any) -> str:
    """
    Flatten message content into plain text.

    Only text blocks contribute, thinking and tool blocks are skipped.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(content_to_text(item) for item in content)
    if isinstance(content, dict):
        text = content.get("text")
        if isinstance(text, str) and content.get("type") in (None, "text", "text_delta"):
            return text
    return ""


def extract_reasoning(chunk: Any) -> str:
    """
    Pull reasoning text out of a streamed model chunk.

    GOTCHA: providers disagree on where reasoning lives. Anthropic emits
    thinking blocks, others put reasoning_content in additional_kwargs.
    """
    parts: List[str] = []
    content = getattr(chunk, "content", None)
    if isinstance(content, list):
        for block in content:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "thinking" and isinstance(block.get("thinking"), str):
                parts.append(block["thinking"])
            elif block.get("type") == "reasoning":
                text = block.get("reasoning", block.get("text"))
                if isinstance(text, str):
                    parts.append(text)

    additional = getattr(chunk, "additional_kwargs", None) or {}
    for key in ("reasoning_content", "reasoning"):
        value = additional.get(key)
        if isinstance(value, str):
            parts.append(value)
            break
    return "".join(parts)


def result_output(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return an event's output if it carries a message list."""
    data = event.get("data") or {}
    output = data.get("output")
    if isinstance(output, dict) and isinstance(output.get("messages"), list):
        return output
    return None


class ToolCallTracker:
    """
    Correlate tool start/end events with provider-issued call ids.

    Tool calls announced by the model are queued per tool name; each
    tool start claims the oldest queued id for its name, falling back
    to the event's run id.

    GOTCHA: end events without a matching start still resolve to an id and a name
    """

    def __init__(self) -> None:
        self._announced: Dict[str, Deque[str]] = {}
        self._pending: Dict[str, Tuple[str, str]] = {}

    def announce(self, message: Any) -> None:
        """Record tool calls requested by a finished model message."""
        for call in getattr(message, "tool_calls", None) or []:
            name = call.get("name")
            call_id = call.get("id")
            if name and call_id:
                self._announced.setdefault(name, deque()).append(call_id)

    def start(self, run_id: str, name: str) -> str:
        queued = self._announced.get(name)
        call_id = queued.popleft() if queued else run_id
        self._pending[run_id] = (call_id, name)
        return call_id

    def finish(self, run_id: str, name: Optional[str], output: Any) -> Tuple[str, str]:
        pending = self._pending.pop(run_id, None)
        if pending is not None:
            return pending
        call_id = getattr(output, "tool_call_id", None) or run_id
        return call_id, name or "unknown_tool"
