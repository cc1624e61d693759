"""
Durable key-value storage для состояния воронки.

Хранит профиль ответов, старт таймера, счётчик мест и UTM-атрибуцию
между перезагрузками. Отсутствие ключа - нормальный "первый визит".

Бэкенды:
- SQLiteStorage: файл SQLite (WAL), переживает перезапуск процесса
- MemoryStorage: только в памяти (тесты, симулятор)
- SafeStorage: обёртка, которая при сбое бэкенда деградирует в память
  и никогда не бросает исключение вызывающему коду

Использование:
    from src.storage import create_storage

    storage = create_storage()
    storage.set_json("quiz_utms", {"utm_source": "fb"})
    utms = storage.get_json("quiz_utms", default={})
"""

from __future__ import annotations

import json
import os
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from src.logger import logger
from src.settings import settings


class KeyValueStorage:
    """Строковое хранилище с namespace и JSON-хелперами"""

    def __init__(self, namespace: str = "quiz"):
        self.namespace = namespace

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)

    def get_json(self, key: str, default: Any = None) -> Any:
        """Прочитать JSON; битые или отсутствующие данные дают default"""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("Malformed stored value ignored", key=key, error=str(exc))
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False))


class MemoryStorage(KeyValueStorage):
    """Хранилище в памяти процесса, теряется при перезапуске"""

    def __init__(self, namespace: str = "quiz", initial: Optional[Dict[str, str]] = None):
        super().__init__(namespace)
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class SQLiteStorage(KeyValueStorage):
    """Постоянное хранилище, общее для процессов (одна строка на ключ)"""

    DEFAULT_DB_NAME = "funnel_storage.sqlite"

    def __init__(self, db_path: Optional[str] = None, namespace: str = "quiz"):
        super().__init__(namespace)
        self._db_path = Path(
            db_path or os.getenv("FUNNEL_STORAGE_PATH", self.DEFAULT_DB_NAME)
        ).resolve()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv (
                        namespace TEXT NOT NULL,
                        key TEXT NOT NULL,
                        value TEXT NOT NULL,
                        updated_at REAL NOT NULL,
                        PRIMARY KEY (namespace, key)
                    )
                    """
                )
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT value FROM kv WHERE namespace = ? AND key = ?",
                (self.namespace, key),
            ).fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def set(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO kv (namespace, key, value, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (self.namespace, key, value, time.time()),
                )
        finally:
            conn.close()

    def remove(self, key: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    "DELETE FROM kv WHERE namespace = ? AND key = ?",
                    (self.namespace, key),
                )
        finally:
            conn.close()

    def keys(self) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT key FROM kv WHERE namespace = ? ORDER BY updated_at ASC",
                (self.namespace,),
            ).fetchall()
            return [row[0] for row in rows]
        finally:
            conn.close()


class SafeStorage(KeyValueStorage):
    """
    Обёртка над бэкендом, которая никогда не бросает исключения.

    Все записи дублируются в память. Если бэкенд недоступен (не создался,
    диск заполнен, файл заблокирован), хранилище переходит в режим
    degraded и дальше работает только из памяти.
    """

    STORAGE_ERRORS = (sqlite3.Error, OSError)

    def __init__(
        self,
        backend_factory: Optional[Callable[[], KeyValueStorage]] = None,
        namespace: str = "quiz",
    ):
        super().__init__(namespace)
        self._shadow = MemoryStorage(namespace)
        self._backend: Optional[KeyValueStorage] = None
        self.degraded = backend_factory is None

        if backend_factory is not None:
            try:
                self._backend = backend_factory()
            except self.STORAGE_ERRORS as exc:
                self._degrade("init", exc)

    def _degrade(self, operation: str, exc: Exception) -> None:
        if not self.degraded:
            logger.warning(
                "Storage unavailable, falling back to memory",
                operation=operation,
                error=str(exc),
            )
        self.degraded = True
        self._backend = None

    def get(self, key: str) -> Optional[str]:
        if self._backend is not None:
            try:
                value = self._backend.get(key)
                if value is not None:
                    self._shadow.set(key, value)
                return value
            except self.STORAGE_ERRORS as exc:
                self._degrade("get", exc)
        return self._shadow.get(key)

    def set(self, key: str, value: str) -> None:
        self._shadow.set(key, value)
        if self._backend is not None:
            try:
                self._backend.set(key, value)
            except self.STORAGE_ERRORS as exc:
                self._degrade("set", exc)

    def remove(self, key: str) -> None:
        self._shadow.remove(key)
        if self._backend is not None:
            try:
                self._backend.remove(key)
            except self.STORAGE_ERRORS as exc:
                self._degrade("remove", exc)

    def keys(self) -> List[str]:
        if self._backend is not None:
            try:
                return self._backend.keys()
            except self.STORAGE_ERRORS as exc:
                self._degrade("keys", exc)
        return self._shadow.keys()


def create_storage(config=None) -> SafeStorage:
    """
    Создать хранилище по настройкам storage.*

    Args:
        config: DotDict секции storage (по умолчанию settings.storage)

    Returns:
        SafeStorage, который деградирует в память при сбоях
    """
    config = config or settings.storage
    namespace = config.get("namespace", "quiz")
    backend = config.get("backend", "sqlite")

    if backend == "memory":
        return SafeStorage(lambda: MemoryStorage(namespace), namespace=namespace)

    path = config.get("path")
    return SafeStorage(lambda: SQLiteStorage(path, namespace=namespace), namespace=namespace)
