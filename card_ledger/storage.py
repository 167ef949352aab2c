"""
Storage Backend Module

Provides an abstract document store and implementations for in-memory
(testing), JSON files (default persistence) and SQLite. A document is a
named array of JSON records, always read and written as a whole.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union
from datetime import datetime, timezone
from pathlib import Path
import json
import os
import sqlite3
import tempfile

from .errors import PersistenceError
from .logging_config import get_logger

Records = List[Dict[str, Any]]


class DocumentStore(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def read(self, name: str) -> Optional[Records]:
        """Load a document; None when it has never been written"""
        pass

    @abstractmethod
    def write(self, name: str, records: Records) -> None:
        """Replace a document with a full snapshot"""
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Check if a document exists"""
        pass

    @abstractmethod
    def delete(self, name: str) -> bool:
        """Delete a document"""
        pass

    def close(self) -> None:
        """Release resources (default no-op)"""
        pass


class InMemoryDocumentStore(DocumentStore):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._documents: Dict[str, str] = {}

    def read(self, name: str) -> Optional[Records]:
        raw = self._documents.get(name)
        if raw is None:
            return None
        return json.loads(raw)

    def write(self, name: str, records: Records) -> None:
        # Stored serialized to prevent external mutation
        self._documents[name] = json.dumps(records, default=str)

    def exists(self, name: str) -> bool:
        return name in self._documents

    def delete(self, name: str) -> bool:
        return self._documents.pop(name, None) is not None

    def get_all_data(self) -> Dict[str, Records]:
        """Get all documents for debugging/inspection"""
        return {name: json.loads(raw) for name, raw in self._documents.items()}


class JsonFileStore(DocumentStore):
    """One ``<name>.json`` array file per document in a data directory"""

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        self.logger = get_logger("card_ledger.storage")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create data directory {self.data_dir}: {e}") from e

    def path_for(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def read(self, name: str) -> Optional[Records]:
        path = self.path_for(name)
        if not path.exists():
            return None

        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read {path}: {e}") from e

        if not isinstance(data, list):
            raise PersistenceError(f"Invalid data file format: {path}")

        self.logger.debug(f"Loaded {len(data)} records from {path}")
        return data

    def write(self, name: str, records: Records) -> None:
        path = self.path_for(name)
        # Write to a sibling temp file and swap it in, so the previous
        # snapshot survives a crash mid-write
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self.data_dir)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(records, handle, ensure_ascii=False, indent=2, default=str)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise PersistenceError(f"Cannot write {path}: {e}") from e

        self.logger.debug(f"Saved {len(records)} records to {path}")

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def delete(self, name: str) -> bool:
        path = self.path_for(name)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise PersistenceError(f"Cannot delete {path}: {e}") from e
        return True


class SQLiteDocumentStore(DocumentStore):
    """SQLite storage implementation; one row per document"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._connection = sqlite3.connect(self.db_path)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    name TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e

    def read(self, name: str) -> Optional[Records]:
        try:
            cursor = self._connection.execute(
                "SELECT data FROM documents WHERE name = ?", (name,)
            )
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot read document {name}: {e}") from e

        if row is None:
            return None
        data = json.loads(row['data'])
        if not isinstance(data, list):
            raise PersistenceError(f"Invalid document format: {name}")
        return data

    def write(self, name: str, records: Records) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            # The connection context commits on success and rolls back on error
            with self._connection:
                self._connection.execute("""
                    INSERT OR REPLACE INTO documents (name, data, updated_at)
                    VALUES (?, ?, ?)
                """, (name, json.dumps(records, default=str), now))
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot write document {name}: {e}") from e

    def exists(self, name: str) -> bool:
        cursor = self._connection.execute(
            "SELECT 1 FROM documents WHERE name = ? LIMIT 1", (name,)
        )
        return cursor.fetchone() is not None

    def delete(self, name: str) -> bool:
        with self._connection:
            cursor = self._connection.execute("DELETE FROM documents WHERE name = ?", (name,))
        return cursor.rowcount > 0

    def close(self) -> None:
        if self._connection:
            self._connection.close()
            self._connection = None


def create_store(config) -> DocumentStore:
    """Select a storage backend from configuration"""
    backend = config.storage_backend.lower()
    if backend == "json":
        return JsonFileStore(config.data_dir)
    if backend == "sqlite":
        return SQLiteDocumentStore(config.resolved_sqlite_path())
    if backend == "memory":
        return InMemoryDocumentStore()
    raise ValueError(f"Unknown storage backend: {config.storage_backend}")
