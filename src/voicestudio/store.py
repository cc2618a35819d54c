"""Concrete implementations for the persistence substrate.

Every pillar that needs durability (sessions, speech tracks, transcriptions)
talks to a :class:`Store`. A store holds named collections of keyed entries;
each entry is a JSON-compatible document plus an optional binary payload.
"""

import copy
import json
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional
from urllib.parse import quote, unquote

from .exceptions import StorageError


class Entry(NamedTuple):
    """A single keyed record inside a collection."""

    key: str
    document: Dict[str, Any]
    payload: Optional[bytes] = None


class Store(ABC):
    """Interface for saving and loading keyed records."""

    @abstractmethod
    def get_all(self, collection: str) -> List[Entry]:
        """Returns every entry in a collection, in no guaranteed order."""
        pass

    @abstractmethod
    def get(self, collection: str, key: str) -> Optional[Entry]:
        """Returns one entry, or None if the key is absent."""
        pass

    @abstractmethod
    def put(self, collection: str, entry: Entry) -> None:
        """Inserts or replaces an entry. A single put is atomic."""
        pass

    @abstractmethod
    def delete(self, collection: str, key: str) -> bool:
        """Removes an entry. Returns False if it did not exist."""
        pass


class InMemory(Store):
    """Keeps collections in a process-local dictionary.

    Nothing survives a restart; useful for tests and throwaway sessions.
    """

    def __init__(self):
        self._store: Dict[str, Dict[str, Entry]] = {}
        self._lock = threading.Lock()

    def get_all(self, collection: str) -> List[Entry]:
        with self._lock:
            return [
                self._copy(entry)
                for entry in self._store.get(collection, {}).values()
            ]

    def get(self, collection: str, key: str) -> Optional[Entry]:
        with self._lock:
            entry = self._store.get(collection, {}).get(str(key))
            return self._copy(entry) if entry else None

    def put(self, collection: str, entry: Entry) -> None:
        with self._lock:
            records = self._store.setdefault(collection, {})
            records[str(entry.key)] = self._copy(entry)

    def delete(self, collection: str, key: str) -> bool:
        with self._lock:
            return self._store.get(collection, {}).pop(str(key), None) is not None

    @staticmethod
    def _copy(entry: Entry) -> Entry:
        return Entry(str(entry.key), copy.deepcopy(entry.document), entry.payload)


class File(Store):
    """Saves collections to the local file system.

    Layout::

        base_dir/
            <collection>/
                <key>.json   # the document
                <key>.bin    # the payload, when there is one
    """

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        self._lock = threading.Lock()

    def _collection_dir(self, collection: str, create: bool = False) -> Path:
        path = self.base_dir / quote(collection, safe="")
        if create:
            path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def _stem(key: str) -> str:
        return quote(str(key), safe="")

    def get_all(self, collection: str) -> List[Entry]:
        directory = self._collection_dir(collection)
        if not directory.is_dir():
            return []
        try:
            return [
                self._read(directory, unquote(path.stem))
                for path in sorted(directory.glob("*.json"))
            ]
        except OSError as e:
            raise StorageError(f"Failed to list {collection!r}: {e}") from e

    def get(self, collection: str, key: str) -> Optional[Entry]:
        directory = self._collection_dir(collection)
        if not (directory / f"{self._stem(key)}.json").exists():
            return None
        return self._read(directory, str(key))

    def _read(self, directory: Path, key: str) -> Entry:
        stem = self._stem(key)
        try:
            with open(directory / f"{stem}.json", "r", encoding="utf-8") as f:
                document = json.load(f)
            payload_file = directory / f"{stem}.bin"
            payload = payload_file.read_bytes() if payload_file.exists() else None
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read {key!r} from {directory}: {e}") from e
        return Entry(key, document, payload)

    def put(self, collection: str, entry: Entry) -> None:
        stem = self._stem(entry.key)
        try:
            data = json.dumps(entry.document, indent=2).encode("utf-8")
            with self._lock:
                directory = self._collection_dir(collection, create=True)
                payload_file = directory / f"{stem}.bin"
                if entry.payload is not None:
                    self._replace(payload_file, entry.payload)
                elif payload_file.exists():
                    payload_file.unlink()
                # The document goes last so a visible .json always has its payload.
                self._replace(directory / f"{stem}.json", data)
        except (OSError, TypeError) as e:
            raise StorageError(f"Failed to write {entry.key!r} to {collection!r}: {e}") from e

    @staticmethod
    def _replace(target: Path, data: bytes) -> None:
        tmp = target.with_name(target.name + ".tmp")
        with open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, target)

    def delete(self, collection: str, key: str) -> bool:
        directory = self._collection_dir(collection)
        stem = self._stem(key)
        document_file = directory / f"{stem}.json"
        if not document_file.exists():
            return False
        try:
            document_file.unlink()
            (directory / f"{stem}.bin").unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {key!r} from {collection!r}: {e}") from e
        return True


SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    collection TEXT NOT NULL,
    key TEXT NOT NULL,
    document TEXT NOT NULL,
    payload BLOB,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (collection, key)
);

CREATE INDEX IF NOT EXISTS idx_records_collection ON records(collection);
"""


class SQLite(Store):
    """Saves collections to a single SQLite database file."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> Entry:
        payload = row["payload"]
        return Entry(
            row["key"],
            json.loads(row["document"]),
            bytes(payload) if payload is not None else None,
        )

    def get_all(self, collection: str) -> List[Entry]:
        with self._lock:
            try:
                rows = (
                    self._get_conn()
                    .execute(
                        "SELECT key, document, payload FROM records "
                        "WHERE collection = ? ORDER BY rowid",
                        (collection,),
                    )
                    .fetchall()
                )
                return [self._row_to_entry(r) for r in rows]
            except (sqlite3.Error, ValueError) as e:
                raise StorageError(f"Failed to list {collection!r}: {e}") from e

    def get(self, collection: str, key: str) -> Optional[Entry]:
        with self._lock:
            try:
                row = (
                    self._get_conn()
                    .execute(
                        "SELECT key, document, payload FROM records "
                        "WHERE collection = ? AND key = ?",
                        (collection, str(key)),
                    )
                    .fetchone()
                )
                return self._row_to_entry(row) if row else None
            except (sqlite3.Error, ValueError) as e:
                raise StorageError(f"Failed to read {key!r} from {collection!r}: {e}") from e

    def put(self, collection: str, entry: Entry) -> None:
        with self._lock:
            try:
                conn = self._get_conn()
                conn.execute(
                    """INSERT OR REPLACE INTO records
                    (collection, key, document, payload, updated_at)
                    VALUES (?, ?, ?, ?, ?)""",
                    (
                        collection,
                        str(entry.key),
                        json.dumps(entry.document),
                        entry.payload,
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                conn.commit()
            except (sqlite3.Error, TypeError) as e:
                raise StorageError(f"Failed to write {entry.key!r} to {collection!r}: {e}") from e

    def delete(self, collection: str, key: str) -> bool:
        with self._lock:
            try:
                conn = self._get_conn()
                cursor = conn.execute(
                    "DELETE FROM records WHERE collection = ? AND key = ?",
                    (collection, str(key)),
                )
                conn.commit()
                return cursor.rowcount > 0
            except sqlite3.Error as e:
                raise StorageError(f"Failed to delete {key!r} from {collection!r}: {e}") from e
