"""Pydantic models shared across the runtime."""

from .message_models import (
    ThreadMessage,
    TextSegment,
    DataSegment,
    ContentSegment,
    ToolCallInfo,
    MessageRole,
)
from .thread_models import (
    ERROR_CHANNEL,
    ThreadSnapshot,
    ThreadRecord,
    CheckpointEntry,
    ThreadError,
    ThreadHistory,
)
from .llm_models import (
    ProviderKind,
    ProviderCapabilities,
    AuthFieldKind,
    AuthFieldDefinition,
    SetupInstructions,
    ProviderAuthConfig,
    AuthObject,
    AuthValidationResult,
    ModelOptions,
)
from .agent_models import (
    AgentResult,
    StreamChunk,
    TokenChunk,
    ReasoningTokenChunk,
    ToolStartChunk,
    ToolEndChunk,
    ResultChunk,
    CheckpointMessageChunk,
)

__all__ = [
    "ThreadMessage",
    "TextSegment",
    "DataSegment",
    "ContentSegment",
    "ToolCallInfo",
    "MessageRole",
    "ERROR_CHANNEL",
    "ThreadSnapshot",
    "ThreadRecord",
    "CheckpointEntry",
    "ThreadError",
    "ThreadHistory",
    "ProviderKind",
    "ProviderCapabilities",
    "AuthFieldKind",
    "AuthFieldDefinition",
    "SetupInstructions",
    "ProviderAuthConfig",
    "AuthObject",
    "AuthValidationResult",
    "ModelOptions",
    "AgentResult",
    "StreamChunk",
    "TokenChunk",
    "ReasoningTokenChunk",
    "ToolStartChunk",
    "ToolEndChunk",
    "ResultChunk",
    "CheckpointMessageChunk",
]
