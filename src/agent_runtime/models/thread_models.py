"""Thread persistence data models."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional

from .message_models import ThreadMessage

ERROR_CHANNEL = "__error__"


class ThreadSnapshot(BaseModel):
    """Message-free thread summary used for listings."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(alias="threadId")
    title: Optional[str] = Field(default=None)
    metadata: Optional[Dict[str, Any]] = Field(default=None)
    created_at: int = Field(alias="createdAt", description="Epoch milliseconds")
    updated_at: int = Field(alias="updatedAt", description="Epoch milliseconds")


class CheckpointEntry(BaseModel):
    """One stored checkpoint inside a thread record."""

    model_config = ConfigDict(populate_by_name=True)

    checkpoint: Dict[str, Any]
    metadata: Dict[str, Any] = Field(default_factory=dict)
    parent_config: Optional[Dict[str, Any]] = Field(default=None, alias="parentConfig")


class ThreadRecord(BaseModel):
    """
    Full on-disk record for one thread.

    PATTERN: writes are keyed by checkpoint id and only ever appended to
    GOTCHA: pending writes may be [channel, value] or [task_id, channel, value]
    """

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(alias="threadId")
    title: Optional[str] = Field(default=None)
    metadata: Optional[Dict[str, Any]] = Field(default=None)
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")
    checkpoints: Dict[str, CheckpointEntry] = Field(default_factory=dict)
    writes: Dict[str, List[List[Any]]] = Field(default_factory=dict)

    def to_snapshot(self) -> ThreadSnapshot:
        """Build the listing snapshot for this record."""
        return ThreadSnapshot(
            thread_id=self.thread_id,
            title=self.title,
            metadata=self.metadata,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class ThreadError(BaseModel):
    """Error recorded on the reserved error channel."""

    message: str = Field(default="Unknown error")
    name: Optional[str] = Field(default=None)


class ThreadHistory(BaseModel):
    """Thread metadata merged with the latest checkpoint's messages."""

    thread_id: str
    title: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None
    messages: List[ThreadMessage] = Field(default_factory=list)
    last_error: Optional[ThreadError] = None
    error_count: int = 0
