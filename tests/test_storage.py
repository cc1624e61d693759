"""
Тесты durable storage: бэкенды, JSON-хелперы, деградация в память.
"""

import sqlite3

import pytest

from src.settings import DotDict
from src.storage import MemoryStorage, SafeStorage, SQLiteStorage, create_storage


class _BrokenStorage(MemoryStorage):
    """Бэкенд, который падает на записи после fail_after успешных вызовов"""

    def __init__(self, fail_after: int = 0):
        super().__init__()
        self.calls = 0
        self.fail_after = fail_after

    def set(self, key, value):
        self.calls += 1
        if self.calls > self.fail_after:
            raise sqlite3.OperationalError("database is locked")
        super().set(key, value)

    def get(self, key):
        if self.calls > self.fail_after:
            raise sqlite3.OperationalError("database is locked")
        return super().get(key)


class TestMemoryStorage:

    def test_missing_key_is_none(self):
        assert MemoryStorage().get("quiz_data") is None

    def test_json_round_trip_keeps_unicode(self):
        storage = MemoryStorage()
        storage.set_json("quiz_utms", {"utm_source": "фейсбук"})
        assert "фейсбук" in storage.get("quiz_utms")
        assert storage.get_json("quiz_utms") == {"utm_source": "фейсбук"}

    def test_malformed_json_returns_default(self):
        storage = MemoryStorage(initial={"quiz_data": "{not json"})
        assert storage.get_json("quiz_data", default={}) == {}

    def test_clear(self):
        storage = MemoryStorage(initial={"a": "1", "b": "2"})
        storage.clear()
        assert storage.keys() == []


class TestSQLiteStorage:

    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "kv.sqlite"
        SQLiteStorage(str(path)).set("quiz_timer_start", "1700000000000")

        reopened = SQLiteStorage(str(path))
        assert reopened.get("quiz_timer_start") == "1700000000000"

    def test_namespaces_are_isolated(self, tmp_path):
        path = str(tmp_path / "kv.sqlite")
        SQLiteStorage(path, namespace="a").set("k", "1")
        assert SQLiteStorage(path, namespace="b").get("k") is None

    def test_remove_and_keys(self, tmp_path):
        storage = SQLiteStorage(str(tmp_path / "kv.sqlite"))
        storage.set("x", "1")
        storage.set("y", "2")
        storage.remove("x")
        assert storage.keys() == ["y"]


class TestSafeStorage:
    """Недоступное хранилище не ломает вызывающий код"""

    def test_failing_factory_degrades(self):
        def factory():
            raise sqlite3.OperationalError("unable to open database file")

        storage = SafeStorage(factory)
        assert storage.degraded is True

        storage.set("spots_left", "42")
        assert storage.get("spots_left") == "42"

    def test_runtime_failure_keeps_written_values(self):
        backend = _BrokenStorage(fail_after=1)
        storage = SafeStorage(lambda: backend)

        storage.set("a", "1")
        assert storage.degraded is False

        storage.set("b", "2")
        assert storage.degraded is True
        assert storage.get("a") == "1"
        assert storage.get("b") == "2"

    def test_no_backend_is_memory_only(self):
        storage = SafeStorage()
        assert storage.degraded is True
        storage.set_json("quiz_utms", {"utm_source": "x"})
        assert storage.get_json("quiz_utms") == {"utm_source": "x"}

    def test_unwritable_path_degrades(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        config = DotDict({"backend": "sqlite", "path": str(blocker / "db.sqlite"), "namespace": "quiz"})

        storage = create_storage(config)

        assert storage.degraded is True
        storage.set("quiz_timer_start", "1")
        assert storage.get("quiz_timer_start") == "1"


class TestCreateStorage:

    @pytest.mark.parametrize("backend", ["memory", "sqlite"])
    def test_backends(self, tmp_path, backend):
        config = DotDict({"backend": backend, "path": str(tmp_path / "db.sqlite"), "namespace": "quiz"})
        storage = create_storage(config)
        assert storage.degraded is False
        storage.set("k", "v")
        assert storage.get("k") == "v"
