"""Knowledge-base ingestion: Load -> Split -> Embed -> Upsert."""

import re
from pathlib import Path

from .config import config
from .document_processing import SUPPORTED_SUFFIXES, DocumentLoader, TextChunker
from .embeddings import EmbeddingService
from .retrieval import map_industry_to_namespace
from .vector_store import FaissVectorIndex, VectorRecord

logger = config.get_logger(__name__)


def make_doc_id(file_path: Path) -> str:
    """Derive a stable document id from a file name.

    Returns:
        Lower-cased stem with runs of non-alphanumerics replaced by ``-``.
    """
    return re.sub(r"[^a-z0-9]+", "-", file_path.stem.lower()).strip("-") or "document"


class KnowledgeBaseIngestor:
    """Loads documents into the per-industry vector namespaces."""

    def __init__(
        self,
        vector_index: FaissVectorIndex,
        embedding_service: EmbeddingService,
        chunk_size: int | None = None,
        overlap: int | None = None,
    ) -> None:
        """Initialize the ingestor.

        Args:
            vector_index: Index receiving the chunk vectors.
            embedding_service: Embeds chunk text.
            chunk_size: Size of text chunks. If None, uses config.CHUNK_SIZE.
            overlap: Overlap between chunks. If None, uses config.CHUNK_OVERLAP.
        """
        if chunk_size is None:
            chunk_size = config.CHUNK_SIZE
        if overlap is None:
            overlap = config.CHUNK_OVERLAP
        self.chunker = TextChunker(chunk_size=chunk_size, overlap=overlap)
        self.vector_index = vector_index
        self.embedding_service = embedding_service

    async def ingest_file(
        self,
        file_path: Path,
        industry: str,
        title: str | None = None,
        source_url: str = "",
    ) -> int:
        """Process one document into the industry's namespace.

        Returns:
            Number of chunks written.
        """
        logger.info("Ingesting %s into '%s'", file_path, industry)
        namespace = map_industry_to_namespace(industry)

        text = DocumentLoader.load_document(file_path)
        chunks = self.chunker.chunk_text(
            text,
            doc_id=make_doc_id(file_path),
            industry=namespace,
            title=title or file_path.stem,
            source_url=source_url,
        )
        if not chunks:
            logger.warning("No text extracted from %s", file_path)
            return 0

        embeddings = await self.embedding_service.get_embeddings_batch(
            [chunk.content for chunk in chunks]
        )
        records = []
        for chunk, embedding in zip(chunks, embeddings, strict=True):
            chunk.embedding = embedding
            metadata = {key: value for key, value in chunk.metadata.items() if key != "id"}
            metadata["text"] = chunk.content
            records.append(
                VectorRecord(id=chunk.metadata["id"], vector=embedding, metadata=metadata)
            )

        written = await self.vector_index.upsert(namespace, records)
        self.vector_index.save()
        logger.info("Ingested %d chunks from %s", written, file_path.name)
        return written

    async def ingest_directory(self, root: Path) -> dict[str, int]:
        """Ingest every supported file under each industry sub-directory.

        Each immediate sub-directory of ``root`` names the industry of the
        files beneath it.

        Returns:
            Chunks written per namespace.
        """
        totals: dict[str, int] = {}
        for industry_dir in sorted(path for path in root.iterdir() if path.is_dir()):
            namespace = map_industry_to_namespace(industry_dir.name)
            files = sorted(
                path
                for path in industry_dir.rglob("*")
                if path.is_file() and path.suffix.lower() in SUPPORTED_SUFFIXES
            )
            for file_path in files:
                written = await self.ingest_file(file_path, industry_dir.name)
                totals[namespace] = totals.get(namespace, 0) + written
        logger.info("Directory ingestion finished: %s", totals)
        return totals

    async def clear_namespace(self, namespace: str) -> int:
        """Remove a namespace from the knowledge base.

        Returns:
            Number of records removed.
        """
        return await self.vector_index.delete_namespace(
            map_industry_to_namespace(namespace)
        )
