"""Canonical conversation message models."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional, Union
import uuid

MessageRole = Literal["user", "assistant", "system", "tool"]


def generate_message_id() -> str:
    """Generate a fresh message id."""
    return f"msg_{uuid.uuid4().hex}"


class TextSegment(BaseModel):
    """Plain text content segment."""

    type: Literal["text"] = "text"
    text: str = Field(description="Segment text")


class DataSegment(BaseModel):
    """Structured content segment carrying an arbitrary value."""

    type: Literal["json"] = "json"
    data: Any = Field(default=None, description="Structured payload")


ContentSegment = Union[TextSegment, DataSegment]


class ToolCallInfo(BaseModel):
    """Tool invocation requested by the assistant."""

    id: str = Field(description="Provider-issued or generated call id")
    name: str = Field(description="Tool name")
    arguments: Any = Field(default=None, description="Parsed call arguments")
    description: Optional[str] = Field(default=None)


class ThreadMessage(BaseModel):
    """
    Canonical message shape for every conversation turn.

    CRITICAL: content always holds at least one segment
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_message_id)
    role: MessageRole
    content: List[ContentSegment] = Field(
        min_length=1,
        description="Ordered content segments",
    )
    tool_calls: Optional[List[ToolCallInfo]] = Field(default=None, alias="toolCalls")
    tool_call_id: Optional[str] = Field(default=None, alias="toolCallId")
    tool_name: Optional[str] = Field(default=None, alias="toolName")
    metadata: Optional[Dict[str, Any]] = Field(default=None)
    timestamp: Optional[int] = Field(
        default=None,
        description="Creation time in epoch milliseconds",
    )
    raw: Any = Field(
        default=None,
        exclude=True,
        description="Original payload kept for diagnostics",
    )
