"""Document loading and text chunking for knowledge-base ingestion."""

import math
from pathlib import Path

import pypdf

from .compression import CHARS_PER_TOKEN
from .config import config
from .models import DocumentChunk

logger = config.get_logger(__name__)

TEXT_SUFFIXES = frozenset({".txt", ".md"})
SUPPORTED_SUFFIXES = TEXT_SUFFIXES | {".pdf"}


class DocumentLoader:
    """Handles loading of PDF, TXT and Markdown documents."""

    @staticmethod
    def load_pdf(file_path: Path) -> str:
        """Load text content from a PDF file.

        Returns:
            The extracted text content from the PDF as a string.
        """
        try:
            with file_path.open("rb") as file:
                pdf_reader = pypdf.PdfReader(file)
                text = ""
                for page_num, page in enumerate(pdf_reader.pages):
                    page_text = page.extract_text()
                    text += f"\n--- Page {page_num + 1} ---\n{page_text}\n"
        except Exception:
            logger.exception("Error loading PDF %s", file_path)
            raise
        else:
            return text

    @staticmethod
    def load_text(file_path: Path) -> str:
        """Load a UTF-8 text or Markdown file.

        Returns:
            The file content as a string.
        """
        try:
            text = file_path.read_text(encoding="utf-8")
            logger.info("Loaded text file %s", file_path.name)
        except Exception:
            logger.exception("Error loading text file %s", file_path)
            raise
        else:
            return text

    @classmethod
    def load_document(cls, file_path: Path) -> str:
        """Load document based on file extension.

        Args:
            file_path: Path to the document file.

        Returns:
            The text content of the document as a string.

        Raises:
            ValueError: If the file type is not supported.
        """
        file_ext = file_path.suffix.lower()
        if file_ext == ".pdf":
            return cls.load_pdf(file_path)
        if file_ext in TEXT_SUFFIXES:
            return cls.load_text(file_path)
        msg = f"Unsupported file type: {file_ext}"
        raise ValueError(msg)


def chunk_id(doc_id: str, chunk_index: int) -> str:
    """Build the vector id of a chunk, e.g. ``guide_chunk_003``."""  # noqa: DOC201
    return f"{doc_id}_chunk_{chunk_index:03d}"


class TextChunker:
    """Handles text chunking with fixed length and overlap strategy."""

    def __init__(self, chunk_size: int = 3000, overlap: int = 300) -> None:
        """Initialize the TextChunker with chunk size and overlap.

        Args:
            chunk_size: The size of each text chunk in characters.
            overlap: The number of overlapping characters between chunks.

        Raises:
            ValueError: If overlap is not smaller than chunk_size.
        """
        if overlap >= chunk_size:
            msg = "overlap must be smaller than chunk_size"
            raise ValueError(msg)
        self.chunk_size = chunk_size
        self.overlap = overlap

    def chunk_text(
        self,
        text: str,
        *,
        doc_id: str,
        industry: str,
        title: str = "",
        source_url: str = "",
    ) -> list[DocumentChunk]:
        """Split text into overlapping chunks carrying retrieval metadata.

        Returns:
            A list of DocumentChunk objects representing the text chunks.
        """
        chunks = []
        start = 0
        chunk_index = 0

        while start < len(text):
            end = start + self.chunk_size
            chunk_text = text[start:end]

            # Ensure we don't break in the middle of a word (except for last chunk)
            if end < len(text) and not chunk_text.endswith(" "):
                last_space = chunk_text.rfind(" ")
                # At least half chunk size to prevent too small chunks after adjustment
                if last_space > self.chunk_size // 2:
                    end = start + last_space
                    chunk_text = text[start:end]

            content = chunk_text.strip()
            if content:
                chunks.append(
                    DocumentChunk(
                        content=content,
                        metadata={
                            "id": chunk_id(doc_id, chunk_index),
                            "doc_id": doc_id,
                            "chunk_index": chunk_index,
                            "industry": industry,
                            "title": title,
                            "source_url": source_url,
                            "token_count": math.ceil(len(content) / CHARS_PER_TOKEN),
                        },
                    )
                )
                chunk_index += 1

            if end >= len(text):
                break
            # Always advance, even when a word-boundary cut is shorter than the overlap
            start = max(end - self.overlap, start + 1)

        logger.info("Split '%s' into %d chunks", doc_id, len(chunks))
        return chunks
