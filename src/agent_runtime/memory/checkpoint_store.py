"""File-backed LangGraph checkpointer with a fast thread index."""

import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional, Sequence, Tuple

from langchain_core.runnables import RunnableConfig
from langgraph.checkpoint.base import (
    BaseCheckpointSaver,
    ChannelVersions,
    Checkpoint,
    CheckpointMetadata,
    CheckpointTuple,
)
from langgraph.checkpoint.serde.base import SerializerProtocol

from ..config.runtime_config import RuntimeConfig, get_runtime_config
from ..models.thread_models import CheckpointEntry, ThreadRecord, ThreadSnapshot
from .serialization import from_plain_data, to_plain_data
from .storage import StorageAdapter
from .thread_store import BaseThreadStore, now_ms

logger = logging.getLogger(__name__)

CHAT_EXTENSION = ".chat"
_ILLEGAL_FILE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def sanitize_file_name(name: str, max_length: int = 100) -> str:
    """
    Make a string safe to use as a file name.

    Args:
        name: Proposed name, usually a thread title
        max_length: Maximum length of the result

    Returns:
        Cleaned name, "Untitled" if nothing usable remains
    """
    cleaned = _ILLEGAL_FILE_CHARS.sub("-", name)
    cleaned = re.sub(r"\s+", " ", cleaned).strip().strip(".")
    return cleaned[:max_length].rstrip() or "Untitled"


def normalize_pending_write(write: Sequence[Any]) -> Tuple[str, str, Any]:
    """
    Widen a stored pending write to (task_id, channel, value).

    GOTCHA: older records hold [channel, value] pairs without a task id
    """
    if len(write) == 2:
        return "", str(write[0]), write[1]
    return str(write[0]), str(write[1]), write[2]


class FileCheckpointStore(BaseCheckpointSaver, BaseThreadStore):
    """
    Checkpoint saver persisting one JSON record per thread.

    Each thread lives in ``<chats_folder>/<thread_id>.chat`` and a
    separate index (``threads.json``) holds message-free snapshots so
    listings never load checkpoint bodies.

    PATTERN: record writes are debounced per thread, the index timestamp is refreshed eagerly
    CRITICAL: assumes a single writer per thread, no locking is done
    GOTCHA: call flush() before shutdown, pending debounced writes live on the event loop
    """

    def __init__(
        self,
        storage: StorageAdapter,
        config: Optional[RuntimeConfig] = None,
        *,
        serde: Optional[SerializerProtocol] = None,
    ):
        """
        Initialize checkpoint store.

        Args:
            storage: File surface holding thread records and the index
            config: Runtime configuration (folder names, debounce windows)
            serde: LangGraph serializer for values with no plain JSON form
        """
        super().__init__(serde=serde)
        self.storage = storage
        self.config = config or get_runtime_config()
        self._records: Dict[str, ThreadRecord] = {}
        self._index: Dict[str, ThreadSnapshot] = {}
        self._paths: Dict[str, str] = {}
        self._save_handles: Dict[str, asyncio.TimerHandle] = {}
        self._index_handle: Optional[asyncio.TimerHandle] = None
        self._loaded = False

    # ------------------------------------------------------------------
    # Loading and paths
    # ------------------------------------------------------------------

    @property
    def folder(self) -> str:
        return self.config.chats_folder

    def load(self) -> None:
        """
        Load the thread index, rebuilding it from thread files if needed.

        GOTCHA: a missing or corrupt index is rebuilt by scanning every .chat file
        """
        snapshots: Optional[List[ThreadSnapshot]] = None
        index_path = self.config.index_path
        try:
            if self.storage.exists(index_path):
                data = json.loads(self.storage.read(index_path))
                snapshots = [ThreadSnapshot.model_validate(item) for item in data]
        except (OSError, ValueError) as e:
            logger.warning(f"Thread index unreadable, rebuilding: {e}")
            snapshots = None

        if snapshots is None:
            snapshots = self._rebuild_index()
            self._index = {snapshot.thread_id: snapshot for snapshot in snapshots}
            self._write_index()
        else:
            self._index = {snapshot.thread_id: snapshot for snapshot in snapshots}
        self._loaded = True

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _rebuild_index(self) -> List[ThreadSnapshot]:
        snapshots = []
        for path in self._chat_files():
            record = self._read_record_file(path)
            if record is None:
                continue
            self._paths[record.thread_id] = path
            snapshots.append(record.to_snapshot())
        logger.info(f"Rebuilt thread index from {len(snapshots)} chat files")
        return snapshots

    def _chat_files(self) -> List[str]:
        try:
            return [path for path in self.storage.list(self.folder) if path.endswith(CHAT_EXTENSION)]
        except OSError as e:
            logger.warning(f"Could not list {self.folder}: {e}")
            return []

    def _default_path(self, thread_id: str) -> str:
        return f"{self.folder}/{thread_id}{CHAT_EXTENSION}"

    def _find_path(self, thread_id: str) -> Optional[str]:
        """Locate a thread file, including files renamed after their title."""
        cached = self._paths.get(thread_id)
        if cached and self.storage.exists(cached):
            return cached

        default = self._default_path(thread_id)
        if self.storage.exists(default):
            self._paths[thread_id] = default
            return default

        suffix = f" - {thread_id}{CHAT_EXTENSION}"
        for path in self._chat_files():
            if path.endswith(suffix):
                self._paths[thread_id] = path
                return path
        return None

    def _read_record_file(self, path: str) -> Optional[ThreadRecord]:
        try:
            return ThreadRecord.model_validate(json.loads(self.storage.read(path)))
        except (OSError, ValueError) as e:
            logger.warning(f"Skipping unreadable thread file {path}: {e}")
            return None

    def _load_record(self, thread_id: str, force_reload: bool = False) -> Optional[ThreadRecord]:
        self._ensure_loaded()
        if not force_reload and thread_id in self._records:
            logger.debug(f"Thread record cache hit: {thread_id}")
            return self._records[thread_id]

        path = self._find_path(thread_id)
        if path is None:
            return None
        record = self._read_record_file(path)
        if record is not None:
            self._records[thread_id] = record
        return record

    def _get_or_create_record(self, thread_id: str) -> ThreadRecord:
        record = self._load_record(thread_id)
        if record is not None:
            return record

        snapshot = self._index.get(thread_id)
        timestamp = now_ms()
        record = ThreadRecord(
            thread_id=thread_id,
            title=snapshot.title if snapshot else None,
            metadata=snapshot.metadata if snapshot else None,
            created_at=snapshot.created_at if snapshot else timestamp,
            updated_at=timestamp,
        )
        self._records[thread_id] = record
        return record

    # ------------------------------------------------------------------
    # Debounced persistence
    # ------------------------------------------------------------------

    @staticmethod
    def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _schedule_save(self, thread_id: str) -> None:
        delay = self.config.save_debounce_seconds
        loop = self._running_loop()
        if loop is None or delay <= 0:
            self._save_record(thread_id)
            return

        previous = self._save_handles.pop(thread_id, None)
        if previous is not None:
            previous.cancel()
        self._save_handles[thread_id] = loop.call_later(delay, self._save_record, thread_id)
        logger.debug(f"Scheduled save for thread {thread_id} in {delay}s")

    def _schedule_index_save(self) -> None:
        delay = self.config.index_debounce_seconds
        loop = self._running_loop()
        if loop is None or delay <= 0:
            self._write_index()
            return

        if self._index_handle is not None:
            self._index_handle.cancel()
        self._index_handle = loop.call_later(delay, self._write_index)

    def _save_record(self, thread_id: str) -> None:
        """Write a thread record now. Failures are logged, never raised."""
        self._save_handles.pop(thread_id, None)
        record = self._records.get(thread_id)
        if record is None:
            return

        path = self._find_path(thread_id) or self._default_path(thread_id)
        try:
            data = record.model_dump(mode="json", by_alias=True)
            self.storage.write(path, json.dumps(data, ensure_ascii=False))
            self._paths[thread_id] = path
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save thread {thread_id}: {e}")

    def _write_index(self) -> None:
        """Write the thread index now. Failures are logged, never raised."""
        if self._index_handle is not None:
            self._index_handle.cancel()
            self._index_handle = None

        snapshots = sorted(self._index.values(), key=lambda s: s.updated_at, reverse=True)
        try:
            data = [s.model_dump(mode="json", by_alias=True) for s in snapshots]
            self.storage.write(self.config.index_path, json.dumps(data, ensure_ascii=False))
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save thread index: {e}")

    def _touch_index(self, record: ThreadRecord) -> None:
        """Refresh the index entry for a record ahead of the debounced record write."""
        snapshot = self._index.get(record.thread_id)
        if snapshot is None:
            self._index[record.thread_id] = record.to_snapshot()
        else:
            snapshot.updated_at = record.updated_at
        self._schedule_index_save()

    def flush_sync(self) -> None:
        """Write every pending thread record and the index immediately."""
        for thread_id in list(self._save_handles):
            handle = self._save_handles.get(thread_id)
            if handle is not None:
                handle.cancel()
            self._save_record(thread_id)
        if self._index_handle is not None:
            self._write_index()

    async def flush(self) -> None:
        """Async variant of flush_sync()."""
        self.flush_sync()

    # ------------------------------------------------------------------
    # Thread snapshots
    # ------------------------------------------------------------------

    async def read(self, thread_id: str, force_reload: bool = False) -> Optional[ThreadSnapshot]:
        """
        Read a thread snapshot, preferring the index.

        Args:
            thread_id: Thread identifier
            force_reload: Bypass the index and reread the thread file

        Returns:
            Snapshot copy, or None if the thread is unknown
        """
        self._ensure_loaded()
        if not force_reload and thread_id in self._index:
            return self._index[thread_id].model_copy(deep=True)

        record = self._load_record(thread_id, force_reload=force_reload)
        if record is None:
            return None
        snapshot = record.to_snapshot()
        self._index[thread_id] = snapshot
        return snapshot.model_copy(deep=True)

    async def write(self, snapshot: ThreadSnapshot) -> None:
        """Upsert title, metadata and updated_at for a thread."""
        record = self._get_or_create_record(snapshot.thread_id)
        record.title = snapshot.title
        record.metadata = to_plain_data(snapshot.metadata, self.serde)
        record.updated_at = snapshot.updated_at
        if snapshot.thread_id not in self._index:
            record.created_at = min(record.created_at, snapshot.created_at)

        self._index[snapshot.thread_id] = record.to_snapshot()
        self._schedule_save(snapshot.thread_id)
        self._schedule_index_save()

    async def delete(self, thread_id: str) -> None:
        self.delete_thread(thread_id)

    async def list_threads(self) -> List[ThreadSnapshot]:
        self._ensure_loaded()
        snapshots = sorted(self._index.values(), key=lambda s: s.updated_at, reverse=True)
        return [snapshot.model_copy(deep=True) for snapshot in snapshots]

    async def clear(self) -> None:
        self._ensure_loaded()
        for thread_id in set(self._index) | set(self._records):
            self.delete_thread(thread_id)

    def rename_thread_file(self, thread_id: str, title: str) -> Optional[str]:
        """
        Rename a thread file to include its title.

        Args:
            thread_id: Thread identifier
            title: Title used in the new file name

        Returns:
            New relative path, or None if the thread has no file yet or the rename failed
        """
        self._ensure_loaded()
        if thread_id in self._save_handles:
            self._save_handles.pop(thread_id).cancel()
            self._save_record(thread_id)
        current = self._find_path(thread_id)
        if current is None:
            return None

        target = f"{self.folder}/{sanitize_file_name(title)} - {thread_id}{CHAT_EXTENSION}"
        if target == current:
            return current
        try:
            self.storage.rename(current, target)
        except OSError as e:
            logger.error(f"Failed to rename thread file {current}: {e}")
            return None

        self._paths[thread_id] = target
        return target

    # ------------------------------------------------------------------
    # BaseCheckpointSaver
    # ------------------------------------------------------------------

    def _make_tuple(
        self,
        record: ThreadRecord,
        checkpoint_id: str,
        entry: CheckpointEntry,
        checkpoint_ns: str = "",
    ) -> CheckpointTuple:
        pending_writes = [
            normalize_pending_write(write)
            for write in record.writes.get(checkpoint_id, [])
            if len(write) >= 2
        ]
        return CheckpointTuple(
            config={
                "configurable": {
                    "thread_id": record.thread_id,
                    "checkpoint_ns": checkpoint_ns,
                    "checkpoint_id": checkpoint_id,
                }
            },
            checkpoint=from_plain_data(entry.checkpoint, self.serde),
            metadata=from_plain_data(entry.metadata, self.serde),
            parent_config=from_plain_data(entry.parent_config, self.serde),
            pending_writes=[
                (task_id, channel, from_plain_data(value, self.serde))
                for task_id, channel, value in pending_writes
            ],
        )

    def get_tuple(self, config: RunnableConfig) -> Optional[CheckpointTuple]:
        """
        Get a checkpoint tuple.

        Returns the checkpoint named by ``checkpoint_id`` in the config,
        or the checkpoint with the greatest id when none is given.
        """
        configurable = config.get("configurable", {})
        thread_id = configurable["thread_id"]
        record = self._load_record(thread_id)
        if record is None or not record.checkpoints:
            return None

        checkpoint_id = configurable.get("checkpoint_id") or max(record.checkpoints)
        entry = record.checkpoints.get(checkpoint_id)
        if entry is None:
            return None
        return self._make_tuple(record, checkpoint_id, entry, configurable.get("checkpoint_ns", ""))

    def list(
        self,
        config: Optional[RunnableConfig],
        *,
        filter: Optional[Dict[str, Any]] = None,
        before: Optional[RunnableConfig] = None,
        limit: Optional[int] = None,
    ) -> Iterator[CheckpointTuple]:
        """
        List checkpoints newest first.

        Args:
            config: Config naming a thread (all threads when None)
            filter: Metadata key/value pairs that must all match
            before: Only checkpoints with ids lower than this config's checkpoint_id
            limit: Maximum number of tuples to yield

        Yields:
            Checkpoint tuples in reverse id order
        """
        self._ensure_loaded()
        configurable = (config or {}).get("configurable", {})
        if configurable.get("thread_id"):
            thread_ids = [configurable["thread_id"]]
        else:
            thread_ids = sorted(set(self._index) | set(self._records))
        wanted_id = configurable.get("checkpoint_id")
        before_id = (before or {}).get("configurable", {}).get("checkpoint_id")
        plain_filter = to_plain_data(filter or {}, self.serde)

        remaining = limit
        for thread_id in thread_ids:
            record = self._load_record(thread_id)
            if record is None:
                continue
            for checkpoint_id in sorted(record.checkpoints, reverse=True):
                if wanted_id and checkpoint_id != wanted_id:
                    continue
                if before_id and checkpoint_id >= before_id:
                    continue
                entry = record.checkpoints[checkpoint_id]
                if any(entry.metadata.get(key) != value for key, value in plain_filter.items()):
                    continue
                if remaining is not None:
                    if remaining <= 0:
                        return
                    remaining -= 1
                yield self._make_tuple(record, checkpoint_id, entry, configurable.get("checkpoint_ns", ""))

    def put(
        self,
        config: RunnableConfig,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
        new_versions: ChannelVersions,
    ) -> RunnableConfig:
        """
        Store a checkpoint under the id it carries.

        CRITICAL: state is converted to plain data before it is kept, even in memory

        Returns:
            Config pointing at the stored checkpoint
        """
        configurable = config["configurable"]
        thread_id = configurable["thread_id"]
        checkpoint_ns = configurable.get("checkpoint_ns", "")
        parent_id = configurable.get("checkpoint_id")

        record = self._get_or_create_record(thread_id)
        record.checkpoints[checkpoint["id"]] = CheckpointEntry(
            checkpoint=to_plain_data(checkpoint, self.serde),
            metadata=to_plain_data(metadata, self.serde),
            parent_config=(
                {
                    "configurable": {
                        "thread_id": thread_id,
                        "checkpoint_ns": checkpoint_ns,
                        "checkpoint_id": parent_id,
                    }
                }
                if parent_id
                else None
            ),
        )
        record.updated_at = now_ms()
        self._touch_index(record)
        self._schedule_save(thread_id)

        return {
            "configurable": {
                "thread_id": thread_id,
                "checkpoint_ns": checkpoint_ns,
                "checkpoint_id": checkpoint["id"],
            }
        }

    def put_writes(
        self,
        config: RunnableConfig,
        writes: Sequence[Tuple[str, Any]],
        task_id: str,
        task_path: str = "",
    ) -> None:
        """Append pending writes to the checkpoint named in the config."""
        configurable = config["configurable"]
        thread_id = configurable["thread_id"]
        checkpoint_id = configurable["checkpoint_id"]

        record = self._get_or_create_record(thread_id)
        entries = record.writes.setdefault(checkpoint_id, [])
        for channel, value in writes:
            entries.append([task_id, channel, to_plain_data(value, self.serde)])
        record.updated_at = now_ms()
        self._touch_index(record)
        self._schedule_save(thread_id)

    def delete_thread(self, thread_id: str) -> None:
        """
        Delete a thread's record, file and index entry.

        GOTCHA: storage errors are logged and swallowed, deletion is user-triggered
        """
        self._ensure_loaded()
        handle = self._save_handles.pop(thread_id, None)
        if handle is not None:
            handle.cancel()

        path = self._find_path(thread_id)
        self._records.pop(thread_id, None)
        self._index.pop(thread_id, None)
        self._paths.pop(thread_id, None)
        self._write_index()

        if path is not None:
            try:
                self.storage.remove(path)
            except OSError as e:
                logger.error(f"Failed to delete thread file {path}: {e}")
        logger.info(f"Deleted thread {thread_id}")

    async def aget_tuple(self, config: RunnableConfig) -> Optional[CheckpointTuple]:
        return self.get_tuple(config)

    async def alist(
        self,
        config: Optional[RunnableConfig],
        *,
        filter: Optional[Dict[str, Any]] = None,
        before: Optional[RunnableConfig] = None,
        limit: Optional[int] = None,
    ) -> AsyncIterator[CheckpointTuple]:
        for item in self.list(config, filter=filter, before=before, limit=limit):
            yield item

    async def aput(
        self,
        config: RunnableConfig,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
        new_versions: ChannelVersions,
    ) -> RunnableConfig:
        return self.put(config, checkpoint, metadata, new_versions)

    async def aput_writes(
        self,
        config: RunnableConfig,
        writes: Sequence[Tuple[str, Any]],
        task_id: str,
        task_path: str = "",
    ) -> None:
        self.put_writes(config, writes, task_id, task_path)

    async def adelete_thread(self, thread_id: str) -> None:
        self.delete_thread(thread_id)
