"""Agent result and streaming chunk models."""

from pydantic import BaseModel, Field
from typing import Any, List, Literal, Union

from .message_models import ThreadMessage


class AgentResult(BaseModel):
    """Outcome of one completed agent turn."""

    run_id: str = Field(description="Unique id of this run")
    thread_id: str = Field(description="Conversation thread id")
    duration_ms: float = Field(ge=0, description="Wall-clock duration")
    messages: List[ThreadMessage] = Field(default_factory=list)
    response: str = Field(default="", description="Final assistant text, best effort")
    raw: Any = Field(default=None, description="Raw engine output")


class TokenChunk(BaseModel):
    """Incremental assistant text."""

    type: Literal["token"] = "token"
    run_id: str
    thread_id: str
    token: str


class ReasoningTokenChunk(BaseModel):
    """Incremental reasoning text from thinking-capable models."""

    type: Literal["reasoning_token"] = "reasoning_token"
    run_id: str
    thread_id: str
    token: str


class ToolStartChunk(BaseModel):
    """A tool invocation has started."""

    type: Literal["tool_start"] = "tool_start"
    run_id: str
    thread_id: str
    tool_call_id: str
    name: str
    input: Any = None


class ToolEndChunk(BaseModel):
    """A tool invocation has finished."""

    type: Literal["tool_end"] = "tool_end"
    run_id: str
    thread_id: str
    tool_call_id: str
    name: str
    output: Any = None


class ResultChunk(BaseModel):
    """Final result of a streamed run."""

    type: Literal["result"] = "result"
    run_id: str
    thread_id: str
    result: AgentResult


class CheckpointMessageChunk(BaseModel):
    """Last assistant message as persisted in the latest checkpoint."""

    type: Literal["checkpoint_message"] = "checkpoint_message"
    run_id: str
    thread_id: str
    message: ThreadMessage


StreamChunk = Union[
    TokenChunk,
    ReasoningTokenChunk,
    ToolStartChunk,
    ToolEndChunk,
    ResultChunk,
    CheckpointMessageChunk,
]
