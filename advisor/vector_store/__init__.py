"""Vector index adapters and factory."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from advisor.config import config

from .base import IndexStats, VectorIndex, VectorMatch, VectorRecord, matches_filter
from .faiss_store import FaissVectorIndex

if TYPE_CHECKING:
    from pathlib import Path

VectorBackend = Literal["faiss"]


def get_vector_index(
    backend: VectorBackend = "faiss",
    *,
    index_dir: Path | None = None,
    db_path: Path | None = None,
    load: bool = True,
) -> FaissVectorIndex:
    """Return a configured vector index instance.

    Raises:
        ValueError: If an unsupported backend is requested.
    """
    if backend.lower() == "faiss":
        index = FaissVectorIndex(
            index_dir=index_dir if index_dir is not None else config.VECTOR_INDEX_DIR,
            db_path=db_path if db_path is not None else config.VECTOR_METADATA_DB_PATH,
        )
        if load:
            index.load()
        return index

    msg = f"Unsupported vector index backend: {backend}"
    raise ValueError(msg)


__all__ = [
    "FaissVectorIndex",
    "IndexStats",
    "VectorBackend",
    "VectorIndex",
    "VectorMatch",
    "VectorRecord",
    "get_vector_index",
    "matches_filter",
]
