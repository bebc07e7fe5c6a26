"""Namespaced FAISS vector index with SQLite metadata."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

import faiss
import numpy as np

from advisor.config import config
from advisor.vector_store.base import (
    BaseSQLiteMetadataStore,
    IndexStats,
    VectorMatch,
    matches_filter,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from advisor.vector_store.base import VectorRecord

logger = config.get_logger(__name__)

INDEX_SUFFIX = ".faiss"


class FaissVectorIndex(BaseSQLiteMetadataStore):
    """One FAISS inner-product index per namespace over normalized vectors.

    Scores are cosine similarities. Metadata lives in SQLite and is joined back
    onto hits by vector id.
    """

    backend = "faiss"

    def __init__(
        self,
        index_dir: Path = Path("data/faiss"),
        db_path: Path = Path("data/vector_metadata.db"),
        raw_top_k_multiplier: int = 4,
    ) -> None:
        """Configure the index.

        Args:
            index_dir: Directory holding one ``<namespace>.faiss`` file per
                namespace.
            db_path: SQLite file for record metadata.
            raw_top_k_multiplier: Over-fetch factor applied when a metadata
                filter is given, since filtering happens after the search.
        """
        self.index_dir = Path(index_dir)
        self.index_dir.mkdir(exist_ok=True, parents=True)
        self.indexes: dict[str, faiss.IndexIDMap] = {}
        self.raw_top_k_multiplier = max(1, raw_top_k_multiplier)
        super().__init__(db_path)

    @property
    def dimension(self) -> int | None:
        """Vector dimension shared by every namespace, once known."""
        for index in self.indexes.values():
            return int(index.d)
        return None

    @staticmethod
    def _normalize_embedding(embedding: np.ndarray) -> np.ndarray:
        """Normalize embedding for cosine similarity using inner product search.

        Returns:
            Normalized embedding vector.
        """
        vector = np.array(embedding, dtype="float32").reshape(-1)
        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector
        faiss.normalize_L2(vector.reshape(1, -1))
        return vector

    def _get_or_create_index(self, namespace: str, dimension: int) -> faiss.IndexIDMap:
        """Return the namespace index, creating it on first write.

        Raises:
            ValueError: If ``dimension`` differs from the existing index.

        Returns:
            The namespace's FAISS index.
        """
        expected = self.dimension
        if expected is not None and expected != dimension:
            msg = (
                f"Embedding dimension {dimension} does not match "
                f"FAISS index dimension {expected}"
            )
            raise ValueError(msg)

        index = self.indexes.get(namespace)
        if index is None:
            index = faiss.IndexIDMap(faiss.IndexFlatIP(dimension))
            self.indexes[namespace] = index
            logger.info(
                "Initialized FAISS index for namespace '%s' with dimension %d",
                namespace,
                dimension,
            )
        return index

    def _upsert(self, namespace: str, records: Sequence[VectorRecord]) -> int:
        if not records:
            return 0

        # Later duplicates within one batch win.
        records = list({record.id: record for record in records}.values())

        vectors: list[np.ndarray] = []
        vector_ids: list[int] = []
        replaced: list[int] = []

        with self._connect() as conn:
            cursor = conn.cursor()
            for record in records:
                vector = self._normalize_embedding(record.vector)
                self._get_or_create_index(namespace, vector.shape[0])
                vector_id, existed = self._upsert_record(
                    cursor, namespace, record.id, record.metadata
                )
                if existed:
                    replaced.append(vector_id)
                vectors.append(vector)
                vector_ids.append(vector_id)
            conn.commit()

        index = self.indexes[namespace]
        if replaced:
            index.remove_ids(np.asarray(replaced, dtype="int64"))
        index.add_with_ids(
            np.vstack(vectors).astype("float32"),
            np.asarray(vector_ids, dtype="int64"),
        )  # pyright: ignore[reportCallIssue]
        logger.info(
            "Upserted %d vectors into namespace '%s' (%d replaced)",
            len(vector_ids),
            namespace,
            len(replaced),
        )
        return len(vector_ids)

    def _query(
        self,
        namespace: str,
        vector: np.ndarray,
        top_k: int,
        metadata_filter: dict[str, Any] | None,
    ) -> list[VectorMatch]:
        index = self.indexes.get(namespace)
        if index is None or index.ntotal == 0 or top_k <= 0:
            return []

        normalized_query = self._normalize_embedding(vector)
        if normalized_query.shape[0] != index.d:
            msg = (
                f"Query dimension {normalized_query.shape[0]} does not match "
                f"FAISS index dimension {index.d}"
            )
            raise ValueError(msg)

        raw_top_k = top_k * self.raw_top_k_multiplier if metadata_filter else top_k
        raw_top_k = min(raw_top_k, index.ntotal)

        scores, vector_ids = index.search(
            normalized_query.reshape(1, -1),
            raw_top_k,
        )  # pyright: ignore[reportCallIssue]

        hits = [
            (float(score), int(vector_id))
            for score, vector_id in zip(scores[0], vector_ids[0], strict=True)
            if int(vector_id) != -1  # faiss pads missing results with -1
        ]
        with self._connect() as conn:
            rows = self._fetch_by_vector_ids(
                conn.cursor(), [vector_id for _, vector_id in hits]
            )

        matches: list[VectorMatch] = []
        for score, vector_id in hits:
            row = rows.get(vector_id)
            if row is None:
                continue
            record_id, metadata = row
            if metadata_filter and not matches_filter(metadata, metadata_filter):
                continue
            matches.append(VectorMatch(id=record_id, score=score, metadata=metadata))
            if len(matches) == top_k:
                break
        return matches

    def _fetch(self, namespace: str, ids: list[str]) -> dict[str, dict[str, Any]]:
        with self._connect() as conn:
            return self._fetch_by_record_ids(conn.cursor(), namespace, ids)

    def _describe_stats(self) -> IndexStats:
        namespaces = {
            namespace: int(index.ntotal) for namespace, index in self.indexes.items()
        }
        return IndexStats(
            total_count=sum(namespaces.values()),
            dimension=self.dimension,
            namespaces=dict(sorted(namespaces.items())),
        )

    def _delete_namespace(self, namespace: str) -> int:
        self.indexes.pop(namespace, None)
        index_path = self.index_dir / f"{namespace}{INDEX_SUFFIX}"
        if index_path.exists():
            index_path.unlink()
        removed = self._delete_namespace_rows(namespace)
        logger.info("Deleted namespace '%s' (%d records)", namespace, removed)
        return removed

    async def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> int:
        """Insert or replace records in a namespace.

        Returns:
            Number of records written.
        """
        return await asyncio.to_thread(self._upsert, namespace, records)

    async def query(
        self,
        namespace: str,
        vector: np.ndarray,
        top_k: int,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Search a namespace by cosine similarity.

        Raises:
            ValueError: If the query dimension differs from the index.

        Returns:
            Matches ordered by descending score, at most ``top_k``.
        """
        return await asyncio.to_thread(
            self._query, namespace, vector, top_k, metadata_filter
        )

    async def fetch(
        self, namespace: str, ids: Sequence[str]
    ) -> dict[str, dict[str, Any]]:
        """Load stored metadata for records in a namespace.

        Returns:
            Mapping of record id to metadata for the ids that exist.
        """
        return await asyncio.to_thread(self._fetch, namespace, list(ids))

    async def describe_stats(self) -> IndexStats:
        """Summarize the namespaces held by the index.

        Returns:
            Total count, dimension and per-namespace counts.
        """
        return await asyncio.to_thread(self._describe_stats)

    async def delete_namespace(self, namespace: str) -> int:
        """Drop a namespace from the index, its metadata and its file on disk.

        Returns:
            Number of metadata rows removed.
        """
        return await asyncio.to_thread(self._delete_namespace, namespace)

    def save(self) -> None:
        """Persist every namespace index to disk."""
        if not self.indexes:
            logger.warning("No FAISS indexes to save")
            return

        self.index_dir.mkdir(exist_ok=True, parents=True)
        for namespace, index in self.indexes.items():
            index_path = self.index_dir / f"{namespace}{INDEX_SUFFIX}"
            faiss.write_index(index, str(index_path))
        logger.info("Saved %d FAISS indexes to %s", len(self.indexes), self.index_dir)

    def load(self) -> None:
        """Load every namespace index found in ``index_dir``."""
        self.indexes = {}
        for index_path in sorted(self.index_dir.glob(f"*{INDEX_SUFFIX}")):
            index = faiss.read_index(str(index_path))
            if not isinstance(index, (faiss.IndexIDMap, faiss.IndexIDMap2)):
                logger.warning(
                    "Loaded FAISS index is %s; wrapping with IndexIDMap to enable IDs",
                    type(index).__name__,
                )
                index = faiss.IndexIDMap(index)
            self.indexes[index_path.stem] = index

        if self.indexes:
            logger.info(
                "Loaded %d FAISS namespaces from %s",
                len(self.indexes),
                self.index_dir,
            )
        else:
            logger.warning(
                "No FAISS indexes found in %s. Start with an empty index.",
                self.index_dir,
            )
