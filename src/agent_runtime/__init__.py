"""Provider-agnostic agent execution runtime with durable checkpoints."""

from .agents import Agent, CancellationToken, PreconditionError
from .llm import ProviderRegistry
from .memory import FileCheckpointStore, LocalStorageAdapter
from .messages import canonicalize_message, canonicalize_messages

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "CancellationToken",
    "PreconditionError",
    "ProviderRegistry",
    "FileCheckpointStore",
    "LocalStorageAdapter",
    "canonicalize_message",
    "canonicalize_messages",
]
