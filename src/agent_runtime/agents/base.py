"""Agent preconditions, cancellation and telemetry interfaces."""

import asyncio
from typing import Any, List, Protocol

from ..models.agent_models import AgentResult

NO_MODEL_MESSAGE = "No model selected. Call choose_model() before run()."
EMPTY_QUERY_MESSAGE = "Query must be a non-empty string."


class PreconditionError(ValueError):
    """Raised when the agent is used before it is ready. Never retried."""

    pass


class CancellationToken:
    """
    Cooperative cancellation signal shared by a caller and a running turn.

    PATTERN: checked before each stream event and raced against the engine call
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until cancellation is requested."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise asyncio.CancelledError()


class TelemetrySink(Protocol):
    """Optional observer of agent runs."""

    def get_callbacks(self) -> List[Any]:
        """LangChain callback handlers attached to every run."""
        ...

    def on_run_complete(self, result: AgentResult) -> None:
        """Called once per completed run."""
        ...
