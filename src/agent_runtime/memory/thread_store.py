"""Thread snapshot store interface."""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models.thread_models import ThreadSnapshot


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def create_snapshot(
    thread_id: str,
    title: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    updated_at: Optional[int] = None,
    created_at: Optional[int] = None,
) -> ThreadSnapshot:
    """
    Build a thread snapshot with sensible timestamps.

    Args:
        thread_id: Thread identifier
        title: Optional display title
        metadata: Optional metadata mapping
        updated_at: Last update time, defaults to now
        created_at: Creation time, defaults to updated_at

    Returns:
        New ThreadSnapshot
    """
    updated = updated_at if updated_at is not None else now_ms()
    return ThreadSnapshot(
        thread_id=thread_id,
        title=title,
        metadata=metadata,
        created_at=created_at if created_at is not None else updated,
        updated_at=updated,
    )


class BaseThreadStore(ABC):
    """Abstract store of message-free thread summaries."""

    @abstractmethod
    async def read(self, thread_id: str) -> Optional[ThreadSnapshot]:
        """
        Read a thread snapshot.

        Args:
            thread_id: Thread identifier

        Returns:
            Snapshot if the thread exists, None otherwise
        """
        pass

    @abstractmethod
    async def write(self, snapshot: ThreadSnapshot) -> None:
        """
        Insert or update a thread snapshot.

        Args:
            snapshot: Snapshot to upsert
        """
        pass

    @abstractmethod
    async def delete(self, thread_id: str) -> None:
        """Delete a thread together with all of its checkpoints."""
        pass

    @abstractmethod
    async def list_threads(self) -> List[ThreadSnapshot]:
        """
        List all thread snapshots.

        Returns:
            Snapshots sorted by updated_at, most recent first
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Delete every thread."""
        pass

    def rename_thread_file(self, thread_id: str, title: str) -> Optional[str]:
        """Rename the backing file after the thread title. Stores without per-thread files return None."""
        return None
