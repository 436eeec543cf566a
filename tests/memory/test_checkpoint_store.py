"""Tests for the file-backed checkpoint store."""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from agent_runtime.config import RuntimeConfig
from agent_runtime.memory import (
    FileCheckpointStore,
    LocalStorageAdapter,
    create_snapshot,
    normalize_pending_write,
    sanitize_file_name,
)


def make_config(**overrides) -> RuntimeConfig:
    values = {
        "chats_folder": "chats",
        "index_file": "threads.json",
        "save_debounce_seconds": 0,
        "index_debounce_seconds": 0,
    }
    values.update(overrides)
    return RuntimeConfig(**values)


def make_checkpoint(checkpoint_id: str, messages=None) -> dict:
    return {
        "v": 1,
        "id": checkpoint_id,
        "ts": "2024-05-01T12:00:00+00:00",
        "channel_values": {"messages": messages or []},
        "channel_versions": {"messages": 1},
        "versions_seen": {},
    }


def thread_config(thread_id: str, checkpoint_id: str = None) -> dict:
    configurable = {"thread_id": thread_id, "checkpoint_ns": ""}
    if checkpoint_id:
        configurable["checkpoint_id"] = checkpoint_id
    return {"configurable": configurable}


class TestCheckpoints:
    """Test suite for the BaseCheckpointSaver surface."""

    def _store(self, tmp_path, **overrides) -> FileCheckpointStore:
        return FileCheckpointStore(LocalStorageAdapter(tmp_path), make_config(**overrides))

    def test_list_is_reverse_chronological(self, tmp_path):
        """Test two puts list newest first."""
        store = self._store(tmp_path)
        store.put(thread_config("t1"), make_checkpoint("001"), {"step": 0}, {})
        store.put(thread_config("t1", "001"), make_checkpoint("002"), {"step": 1}, {})

        ids = [item.config["configurable"]["checkpoint_id"] for item in store.list(thread_config("t1"))]

        assert ids == ["002", "001"]

    def test_get_tuple_returns_max_id(self, tmp_path):
        """Test the latest checkpoint is the one with the greatest id, not the last written."""
        store = self._store(tmp_path)
        store.put(thread_config("t1"), make_checkpoint("002"), {}, {})
        store.put(thread_config("t1"), make_checkpoint("001"), {}, {})

        latest = store.get_tuple(thread_config("t1"))

        assert latest.checkpoint["id"] == "002"
        assert latest.config["configurable"]["checkpoint_id"] == "002"

    def test_get_tuple_specific_and_missing(self, tmp_path):
        """Test lookups by id and for unknown threads."""
        store = self._store(tmp_path)
        store.put(thread_config("t1"), make_checkpoint("001"), {}, {})
        store.put(thread_config("t1", "001"), make_checkpoint("002"), {}, {})

        specific = store.get_tuple(thread_config("t1", "001"))

        assert specific.checkpoint["id"] == "001"
        assert store.get_tuple(thread_config("t1", "999")) is None
        assert store.get_tuple(thread_config("nope")) is None

    def test_parent_config(self, tmp_path):
        """Test parent references point at the checkpoint the put was based on."""
        store = self._store(tmp_path)
        store.put(thread_config("t1"), make_checkpoint("001"), {}, {})
        store.put(thread_config("t1", "001"), make_checkpoint("002"), {}, {})

        assert store.get_tuple(thread_config("t1", "001")).parent_config is None
        parent = store.get_tuple(thread_config("t1", "002")).parent_config
        assert parent["configurable"]["checkpoint_id"] == "001"

    def test_list_before_limit_and_filter(self, tmp_path):
        """Test list bounds and metadata filtering."""
        store = self._store(tmp_path)
        for index, checkpoint_id in enumerate(["001", "002", "003", "004"]):
            store.put(thread_config("t1"), make_checkpoint(checkpoint_id), {"source": "loop", "step": index}, {})

        before = [t.checkpoint["id"] for t in store.list(thread_config("t1"), before=thread_config("t1", "003"))]
        limited = [t.checkpoint["id"] for t in store.list(thread_config("t1"), limit=2)]
        filtered = [t.checkpoint["id"] for t in store.list(thread_config("t1"), filter={"step": 1})]

        assert before == ["002", "001"]
        assert limited == ["004", "003"]
        assert filtered == ["002"]

    def test_list_without_thread_walks_all_threads(self, tmp_path):
        """Test a config without thread id lists every thread."""
        store = self._store(tmp_path)
        store.put(thread_config("a"), make_checkpoint("001"), {}, {})
        store.put(thread_config("b"), make_checkpoint("001"), {}, {})

        threads = {t.config["configurable"]["thread_id"] for t in store.list(None)}

        assert threads == {"a", "b"}

    def test_messages_revived(self, tmp_path):
        """Test messages are stored as plain data and revived on read."""
        store = self._store(tmp_path)
        store.put(
            thread_config("t1"),
            make_checkpoint("001", [HumanMessage(content="hi", id="h1"), AIMessage(content="hello", id="a1")]),
            {},
            {},
        )

        record = store._records["t1"]
        stored = record.checkpoints["001"].checkpoint["channel_values"]["messages"]
        assert stored[0]["lc"] == 1

        messages = store.get_tuple(thread_config("t1")).checkpoint["channel_values"]["messages"]
        assert isinstance(messages[0], HumanMessage)
        assert isinstance(messages[1], AIMessage)
        assert messages[1].content == "hello"

    def test_reads_match_after_reload(self, tmp_path):
        """Test an in-memory read and a fresh-from-disk read are identical."""
        store = self._store(tmp_path)
        store.put(thread_config("t1"), make_checkpoint("001", [AIMessage(content="x", id="a1")]), {"step": 0}, {})
        store.put_writes(thread_config("t1", "001"), [("messages", AIMessage(content="y", id="a2"))], "task-1")

        reloaded = self._store(tmp_path)

        first = store.get_tuple(thread_config("t1"))
        second = reloaded.get_tuple(thread_config("t1"))
        assert first.checkpoint == second.checkpoint
        assert first.metadata == second.metadata
        assert first.pending_writes == second.pending_writes

    def test_put_copies_input(self, tmp_path):
        """Test later mutation of the written state does not leak into the store."""
        store = self._store(tmp_path)
        checkpoint = make_checkpoint("001")
        store.put(thread_config("t1"), checkpoint, {"tags": ["a"]}, {})

        checkpoint["channel_values"]["messages"].append("mutated")

        assert store.get_tuple(thread_config("t1")).checkpoint["channel_values"]["messages"] == []

    def test_put_writes_append_only(self, tmp_path):
        """Test pending writes accumulate in submission order."""
        store = self._store(tmp_path)
        store.put(thread_config("t1"), make_checkpoint("001"), {}, {})
        store.put_writes(thread_config("t1", "001"), [("a", 1), ("b", 2)], "task-1")
        store.put_writes(thread_config("t1", "001"), [("a", 3)], "task-2")

        writes = store.get_tuple(thread_config("t1")).pending_writes

        assert writes == [("task-1", "a", 1), ("task-1", "b", 2), ("task-2", "a", 3)]

    def test_error_writes_are_plain_records(self, tmp_path):
        """Test exceptions written to the error channel become {message, name}."""
        store = self._store(tmp_path)
        store.put(thread_config("t1"), make_checkpoint("001"), {}, {})
        store.put_writes(thread_config("t1", "001"), [("__error__", ValueError("boom"))], "task-1")

        _, channel, value = store.get_tuple(thread_config("t1")).pending_writes[0]

        assert channel == "__error__"
        assert value == {"message": "boom", "name": "ValueError"}

    def test_legacy_two_element_writes(self, tmp_path):
        """Test [channel, value] writes on disk are widened to three elements."""
        record = {
            "threadId": "old",
            "createdAt": 1,
            "updatedAt": 2,
            "checkpoints": {"001": {"checkpoint": make_checkpoint("001"), "metadata": {}}},
            "writes": {"001": [["__error__", {"message": "legacy"}], ["t", "messages", "x"]]},
        }
        (tmp_path / "chats").mkdir()
        (tmp_path / "chats" / "old.chat").write_text(json.dumps(record), encoding="utf-8")

        writes = self._store(tmp_path).get_tuple(thread_config("old")).pending_writes

        assert writes == [("", "__error__", {"message": "legacy"}), ("t", "messages", "x")]

    def test_delete_thread(self, tmp_path):
        """Test deletion removes the file, the record and the index entry."""
        store = self._store(tmp_path)
        store.put(thread_config("t1"), make_checkpoint("001"), {}, {})
        assert (tmp_path / "chats" / "t1.chat").exists()

        store.delete_thread("t1")

        assert not (tmp_path / "chats" / "t1.chat").exists()
        assert store.get_tuple(thread_config("t1")) is None
        index = json.loads((tmp_path / "chats" / "threads.json").read_text(encoding="utf-8"))
        assert index == []

    def test_delete_thread_swallows_storage_errors(self, tmp_path):
        """Test storage failures during delete are logged, not raised."""
        storage = MagicMock()
        storage.exists.return_value = True
        storage.read.side_effect = OSError("disk gone")
        storage.list.return_value = []
        storage.remove.side_effect = OSError("disk gone")
        store = FileCheckpointStore(storage, make_config())

        store.delete_thread("t1")

        storage.remove.assert_called_once()

    @pytest.mark.asyncio
    async def test_async_twins(self, tmp_path):
        """Test async methods delegate to the sync implementation."""
        store = self._store(tmp_path)
        await store.aput(thread_config("t1"), make_checkpoint("001"), {}, {})
        await store.aput_writes(thread_config("t1", "001"), [("x", 1)], "task")

        latest = await store.aget_tuple(thread_config("t1"))
        listed = [item async for item in store.alist(thread_config("t1"))]
        await store.adelete_thread("t1")

        assert latest.pending_writes == [("task", "x", 1)]
        assert len(listed) == 1
        assert await store.aget_tuple(thread_config("t1")) is None


class TestThreadSnapshots:
    """Test suite for the thread index and snapshot store."""

    def _store(self, tmp_path, **overrides) -> FileCheckpointStore:
        return FileCheckpointStore(LocalStorageAdapter(tmp_path), make_config(**overrides))

    @pytest.mark.asyncio
    async def test_write_and_read(self, tmp_path):
        """Test snapshots upsert title and metadata."""
        store = self._store(tmp_path)
        await store.write(create_snapshot("t1", title="First", metadata={"a": 1}, updated_at=100))
        await store.write(create_snapshot("t1", title="Renamed", metadata={"a": 2}, updated_at=200))

        snapshot = await store.read("t1")

        assert snapshot.title == "Renamed"
        assert snapshot.metadata == {"a": 2}
        assert snapshot.created_at == 100
        assert snapshot.updated_at == 200
        assert await store.read("missing") is None

    @pytest.mark.asyncio
    async def test_list_threads_sorted_by_updated_at(self, tmp_path):
        """Test listings are most recent first regardless of index order."""
        store = self._store(tmp_path)
        await store.write(create_snapshot("old", updated_at=100))
        await store.write(create_snapshot("new", updated_at=300))
        await store.write(create_snapshot("mid", updated_at=200))

        threads = await store.list_threads()

        assert [t.thread_id for t in threads] == ["new", "mid", "old"]

    @pytest.mark.asyncio
    async def test_put_refreshes_index_immediately(self, tmp_path):
        """Test a debounced put still moves the thread to the top of listings."""
        store = self._store(tmp_path, save_debounce_seconds=30, index_debounce_seconds=30)
        await store.write(create_snapshot("a", updated_at=100))
        await store.write(create_snapshot("b", updated_at=200))

        await store.aput(thread_config("a"), make_checkpoint("001"), {}, {})

        threads = await store.list_threads()
        assert threads[0].thread_id == "a"
        assert threads[0].updated_at > 200
        assert not (tmp_path / "chats" / "a.chat").exists()

        await store.flush()
        assert (tmp_path / "chats" / "a.chat").exists()

    @pytest.mark.asyncio
    async def test_debounce_coalesces_writes(self, tmp_path):
        """Test rapid puts are written once after the debounce window."""
        storage = LocalStorageAdapter(tmp_path)
        storage.write = MagicMock(wraps=storage.write)
        store = FileCheckpointStore(storage, make_config(save_debounce_seconds=0.05, index_debounce_seconds=0.05))

        for checkpoint_id in ["001", "002", "003"]:
            await store.aput(thread_config("t1"), make_checkpoint(checkpoint_id), {}, {})
        await asyncio.sleep(0.2)

        chat_writes = [c for c in storage.write.call_args_list if c.args[0] == "chats/t1.chat"]
        assert len(chat_writes) == 1
        saved = json.loads((tmp_path / "chats" / "t1.chat").read_text(encoding="utf-8"))
        assert sorted(saved["checkpoints"]) == ["001", "002", "003"]

    @pytest.mark.asyncio
    async def test_index_rebuilt_when_missing(self, tmp_path):
        """Test the index is rebuilt from thread files on first load."""
        store = self._store(tmp_path)
        store.put(thread_config("t1"), make_checkpoint("001"), {}, {})
        (tmp_path / "chats" / "threads.json").unlink()

        rebuilt = self._store(tmp_path)

        assert [t.thread_id for t in await rebuilt.list_threads()] == ["t1"]
        assert (tmp_path / "chats" / "threads.json").exists()

    @pytest.mark.asyncio
    async def test_corrupt_index_rebuilt(self, tmp_path):
        """Test an unreadable index is treated as missing."""
        store = self._store(tmp_path)
        store.put(thread_config("t1"), make_checkpoint("001"), {}, {})
        (tmp_path / "chats" / "threads.json").write_text("{not json", encoding="utf-8")

        rebuilt = self._store(tmp_path)

        assert await rebuilt.read("t1") is not None

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, tmp_path):
        """Test delete() and clear() remove threads entirely."""
        store = self._store(tmp_path)
        for thread_id in ["a", "b", "c"]:
            store.put(thread_config(thread_id), make_checkpoint("001"), {}, {})

        await store.delete("a")
        assert {t.thread_id for t in await store.list_threads()} == {"b", "c"}
        assert await store.read("a") is None

        await store.clear()
        assert await store.list_threads() == []
        assert list((tmp_path / "chats").glob("*.chat")) == []

    def test_rename_thread_file(self, tmp_path):
        """Test renamed files are still found by thread id."""
        store = self._store(tmp_path)
        store.put(thread_config("t1"), make_checkpoint("001"), {}, {})

        path = store.rename_thread_file("t1", 'Trip: "Paris"?')

        assert path == "chats/Trip- -Paris-- - t1.chat"
        assert (tmp_path / path).exists()
        reloaded = self._store(tmp_path)
        assert reloaded.get_tuple(thread_config("t1")).checkpoint["id"] == "001"

    @pytest.mark.asyncio
    async def test_rename_writes_pending_save_first(self, tmp_path):
        """Test a thread whose first save is still debounced is written and then renamed."""
        store = self._store(tmp_path, save_debounce_seconds=60)
        await store.write(create_snapshot("t1", title="Trip"))
        assert not (tmp_path / "chats" / "t1.chat").exists()

        path = store.rename_thread_file("t1", "Trip")

        assert path == "chats/Trip - t1.chat"
        assert (tmp_path / path).exists()
        assert not (tmp_path / "chats" / "t1.chat").exists()

    def test_rename_unknown_thread(self, tmp_path):
        """Test renaming a thread without a file is a no-op."""
        assert self._store(tmp_path).rename_thread_file("ghost", "Title") is None


class TestHelpers:
    """Test suite for module helpers."""

    def test_sanitize_file_name(self):
        """Test illegal characters are replaced and empty names get a default."""
        assert sanitize_file_name("a/b\\c:d") == "a-b-c-d"
        assert sanitize_file_name("  many   spaces  ") == "many spaces"
        assert sanitize_file_name("...") == "Untitled"
        assert len(sanitize_file_name("x" * 500)) == 100

    def test_normalize_pending_write(self):
        """Test both pending-write shapes widen to three elements."""
        assert normalize_pending_write(["__error__", {"message": "m"}]) == ("", "__error__", {"message": "m"})
        assert normalize_pending_write(("task", "ch", 1)) == ("task", "ch", 1)

    def test_create_snapshot_defaults(self):
        """Test created_at defaults to updated_at."""
        snapshot = create_snapshot("t1", updated_at=500)

        assert snapshot.created_at == 500
        assert snapshot.updated_at == 500
