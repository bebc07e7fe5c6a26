"""Vector index contract and the SQLite metadata store shared by backends."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from advisor.config import config

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    import numpy as np

logger = config.get_logger(__name__)


@dataclass
class VectorRecord:
    """A vector to upsert into a namespace."""

    id: str
    vector: np.ndarray
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorMatch:
    """A query hit returned by a vector index."""

    id: str
    score: float
    metadata: dict[str, Any]


@dataclass(frozen=True)
class IndexStats:
    """Summary of what an index holds."""

    total_count: int
    dimension: int | None
    namespaces: dict[str, int]


class VectorIndex(Protocol):
    """Namespaced vector search provider."""

    async def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> int: ...

    async def query(
        self,
        namespace: str,
        vector: np.ndarray,
        top_k: int,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]: ...

    async def fetch(
        self, namespace: str, ids: Sequence[str]
    ) -> dict[str, dict[str, Any]]: ...

    async def describe_stats(self) -> IndexStats: ...


def matches_filter(metadata: dict[str, Any], metadata_filter: dict[str, Any]) -> bool:
    """Evaluate a metadata filter.

    Supports plain equality, ``{"$eq": value}``, ``{"$ne": value}`` and
    ``{"$in": [values]}`` per key; all keys must match.

    Returns:
        True if ``metadata`` satisfies every condition.
    """
    for key, condition in metadata_filter.items():
        value = metadata.get(key)
        if isinstance(condition, dict):
            if "$eq" in condition and value != condition["$eq"]:
                return False
            if "$ne" in condition and value == condition["$ne"]:
                return False
            if "$in" in condition and value not in condition["$in"]:
                return False
        elif value != condition:
            return False
    return True


class BaseSQLiteMetadataStore:
    """Record metadata keyed by ``(namespace, record_id)`` in SQLite.

    Each record gets an integer ``vector_id`` (the row id) that backends use as
    the id inside their vector structures.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize metadata store and ensure schema exists."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self._create_tables()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _create_tables(self) -> None:
        """Create the records table and its indexes if they don't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    vector_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    namespace TEXT NOT NULL,
                    record_id TEXT NOT NULL,
                    metadata TEXT NOT NULL DEFAULT '{}',
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (namespace, record_id)
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_records_namespace ON records(namespace)",
            )
            conn.commit()

    @staticmethod
    def _upsert_record(
        cursor: sqlite3.Cursor,
        namespace: str,
        record_id: str,
        metadata: dict[str, Any],
    ) -> tuple[int, bool]:
        """Insert or update a record row.

        Raises:
            RuntimeError: If the row id cannot be retrieved.

        Returns:
            Tuple of (vector_id, existed_before).
        """
        payload = json.dumps(metadata, default=str)
        cursor.execute(
            "SELECT vector_id FROM records WHERE namespace = ? AND record_id = ?",
            (namespace, record_id),
        )
        row = cursor.fetchone()
        if row is not None:
            cursor.execute(
                "UPDATE records SET metadata = ? WHERE vector_id = ?",
                (payload, int(row[0])),
            )
            return int(row[0]), True

        cursor.execute(
            "INSERT INTO records (namespace, record_id, metadata) VALUES (?, ?, ?)",
            (namespace, record_id, payload),
        )
        if cursor.lastrowid is None:
            msg = f"Failed to insert record '{record_id}' into '{namespace}'"
            raise RuntimeError(msg)
        return int(cursor.lastrowid), False

    @staticmethod
    def _fetch_by_vector_ids(
        cursor: sqlite3.Cursor,
        vector_ids: Iterable[int],
    ) -> dict[int, tuple[str, dict[str, Any]]]:
        """Load records by vector id.

        Returns:
            Mapping of vector id to (record_id, metadata).
        """
        ids = [int(vector_id) for vector_id in vector_ids]
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        cursor.execute(
            "SELECT vector_id, record_id, metadata FROM records "  # noqa: S608
            f"WHERE vector_id IN ({placeholders})",
            ids,
        )
        return {
            int(vector_id): (record_id, json.loads(metadata))
            for vector_id, record_id, metadata in cursor.fetchall()
        }

    @staticmethod
    def _fetch_by_record_ids(
        cursor: sqlite3.Cursor,
        namespace: str,
        record_ids: Sequence[str],
    ) -> dict[str, dict[str, Any]]:
        """Load record metadata by external id within a namespace.

        Returns:
            Mapping of record id to metadata for the ids that exist.
        """
        if not record_ids:
            return {}
        placeholders = ",".join("?" for _ in record_ids)
        cursor.execute(
            "SELECT record_id, metadata FROM records "  # noqa: S608
            f"WHERE namespace = ? AND record_id IN ({placeholders})",
            (namespace, *record_ids),
        )
        return {
            record_id: json.loads(metadata)
            for record_id, metadata in cursor.fetchall()
        }

    def _namespace_counts(self) -> dict[str, int]:
        """Count records per namespace.

        Returns:
            Mapping of namespace name to record count.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT namespace, COUNT(*) FROM records GROUP BY namespace "
                "ORDER BY namespace"
            )
            return {namespace: int(count) for namespace, count in cursor.fetchall()}

    def _delete_namespace_rows(self, namespace: str) -> int:
        """Remove every record of a namespace.

        Returns:
            Number of rows deleted.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM records WHERE namespace = ?", (namespace,))
            conn.commit()
            return cursor.rowcount
