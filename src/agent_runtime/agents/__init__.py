"""Agent runtime: model selection, turn execution and thread history."""

from .agent import (
    Agent,
    EngineFactory,
    build_agent_engine,
    last_assistant_message,
    summarize_errors,
)
from .base import CancellationToken, PreconditionError, TelemetrySink

__all__ = [
    "Agent",
    "EngineFactory",
    "build_agent_engine",
    "last_assistant_message",
    "summarize_errors",
    "CancellationToken",
    "PreconditionError",
    "TelemetrySink",
]
