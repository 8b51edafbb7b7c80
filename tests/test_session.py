"""Tests for the generic session store (fsctx.session)."""

import json
import threading
from typing import List

import pytest
from pydantic import BaseModel

from fsctx.errors import StorageError
from fsctx.session import JsonFileBackend, MemoryBackend, SessionStore


class Counter(BaseModel):
    value: int = 0
    history: List[str] = []


def add(amount):
    def mutate(counter):
        counter.value += amount
        counter.history.append(str(amount))
    return mutate


class FailingBackend(MemoryBackend):
    def save(self, document):
        raise StorageError("disk full")


class TestGetOrCreate:
    def test_first_access_returns_zero_value(self, tmp_path):
        store = SessionStore(str(tmp_path / "s.json"), Counter)

        assert store.get_or_create("alpha") == Counter()

        entry = store.entry("alpha")
        assert entry.created_at == entry.last_used

    def test_access_refreshes_last_used(self):
        store = SessionStore(MemoryBackend(), Counter)
        store.get_or_create("alpha")
        first = store.entry("alpha")

        store.get_or_create("alpha")
        second = store.entry("alpha")

        assert second.created_at == first.created_at
        assert second.last_used >= first.last_used
        assert second.created_at <= second.last_used

    def test_access_persists(self, tmp_path):
        path = tmp_path / "s.json"
        store = SessionStore(str(path), Counter)

        store.get_or_create("alpha")

        document = json.loads(path.read_text())
        assert set(document) == {"alpha"}
        assert set(document["alpha"]) == {"data", "created_at", "last_used"}
        assert document["alpha"]["data"] == {"value": 0, "history": []}

    def test_returns_copies(self):
        store = SessionStore(MemoryBackend(), Counter)
        data = store.get_or_create("alpha")
        data.value = 99
        data.history.append("leak")

        assert store.get_or_create("alpha") == Counter()


class TestUpdate:
    def test_updates_fold_in_order(self):
        store = SessionStore(MemoryBackend(), Counter)

        store.update("alpha", add(1))
        store.update("alpha", add(2))
        store.update("alpha", lambda c: Counter(value=c.value * 10, history=c.history))

        assert store.get_or_create("alpha") == Counter(value=30, history=["1", "2"])

    def test_update_creates_missing_session(self):
        store = SessionStore(MemoryBackend(), Counter)
        seen = []

        store.update("fresh", lambda c: seen.append(c.model_copy()))

        assert seen == [Counter()]
        assert store.list_sessions() == ["fresh"]

    def test_update_returns_new_payload(self):
        store = SessionStore(MemoryBackend(), Counter)

        assert store.update("alpha", add(5)).value == 5

    def test_failing_mutator_leaves_state_untouched(self):
        backend = MemoryBackend()
        store = SessionStore(backend, Counter)
        store.update("alpha", add(1))
        saves = backend.saves

        def boom(counter):
            counter.value = 1000
            raise ValueError("nope")

        with pytest.raises(ValueError):
            store.update("alpha", boom)

        assert store.get_or_create("alpha").value == 1
        assert backend.saves == saves + 1

    def test_mutator_must_return_payload_type(self):
        store = SessionStore(MemoryBackend(), Counter)

        with pytest.raises(TypeError):
            store.update("alpha", lambda c: {"value": 3})

    def test_set_keeps_created_at(self):
        store = SessionStore(MemoryBackend(), Counter)
        store.get_or_create("alpha")
        created = store.entry("alpha").created_at

        store.set("alpha", Counter(value=7))

        assert store.entry("alpha").created_at == created
        assert store.get_or_create("alpha").value == 7

    def test_concurrent_updates_are_not_lost(self):
        store = SessionStore(MemoryBackend(), Counter)

        def worker():
            for _ in range(25):
                store.update("shared", lambda c: setattr(c, "value", c.value + 1))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.get_or_create("shared").value == 200


class TestPersistence:
    def test_round_trip_across_instances(self, tmp_path):
        path = str(tmp_path / "nested" / "dir" / "s.json")
        store = SessionStore(path, Counter)
        for session_id, amounts in {"a": [1, 2], "b": [10], "c": [3, 3, 3]}.items():
            for amount in amounts:
                store.update(session_id, add(amount))
        expected = {sid: store.get_or_create(sid) for sid in ("a", "b", "c")}
        del store

        reloaded = SessionStore(path, Counter)

        assert reloaded.list_sessions() == ["a", "b", "c"]
        for session_id, payload in expected.items():
            assert reloaded.get_or_create(session_id) == payload

    def test_missing_file_is_empty(self, tmp_path):
        store = SessionStore(str(tmp_path / "absent.json"), Counter)

        assert store.list_sessions() == []
        assert not (tmp_path / "absent.json").exists()

    def test_empty_file_is_empty(self, tmp_path):
        path = tmp_path / "s.json"
        path.write_text("   \n")

        assert SessionStore(str(path), Counter).list_sessions() == []

    @pytest.mark.parametrize("document", [
        b"{not json",
        b"[1, 2, 3]",
        b'{"a": {"data": 5}}',
        b"\xff\xfe\x00garbage\x80",
    ])
    def test_corrupt_file_starts_empty(self, tmp_path, document):
        path = tmp_path / "s.json"
        path.write_bytes(document)

        store = SessionStore(str(path), Counter)
        assert store.list_sessions() == []

        store.update("a", add(1))
        assert json.loads(path.read_text())["a"]["data"]["value"] == 1

    def test_no_temp_files_left_behind(self, tmp_path):
        store = SessionStore(str(tmp_path / "s.json"), Counter)
        for amount in range(5):
            store.update("a", add(amount))

        assert [p.name for p in tmp_path.iterdir()] == ["s.json"]

    def test_failed_save_rolls_back(self):
        store = SessionStore(FailingBackend(), Counter)

        with pytest.raises(StorageError):
            store.get_or_create("alpha")

        assert store.list_sessions() == []

    def test_uncreatable_directory_is_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")

        with pytest.raises(StorageError):
            JsonFileBackend(str(blocker / "sessions" / "fs.json"))

    def test_failed_replace_reports_storage_error_even_if_cleanup_fails(self, tmp_path, monkeypatch):
        backend = JsonFileBackend(str(tmp_path / "s.json"))

        def refuse(*args):
            raise OSError("read-only filesystem")

        monkeypatch.setattr("fsctx.session.os.replace", refuse)
        monkeypatch.setattr("fsctx.session.os.unlink", refuse)

        with pytest.raises(StorageError, match="Unable to write session file"):
            backend.save("{}")
