"""Chunking and vector indexing of already-extracted document text."""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from .embedding import Embedder
from .errors import CapabilityMissingError
from .vectorstore import EmbeddedChunk, VectorStore

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200
SEPARATORS = ["\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ", ""]
BYTES_PER_VECTOR = 768 * 4

BLANK_LINES_RE = re.compile(r"\n{3,}")
INLINE_SPACE_RE = re.compile(r"[ \t\f\v]+")


@dataclass
class IndexingStats:
    document_id: str
    document_title: str
    total_chunks: int
    total_characters: int
    processing_time_ms: int


def clean_text(text: str) -> str:
    cleaned = INLINE_SPACE_RE.sub(" ", text)
    cleaned = BLANK_LINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()


def build_splitter(chunk_size: int = CHUNK_SIZE, chunk_overlap: int = CHUNK_OVERLAP) -> RecursiveCharacterTextSplitter:
    return RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        separators=SEPARATORS,
    )


def split_text(text: str, chunk_size: int = CHUNK_SIZE, chunk_overlap: int = CHUNK_OVERLAP) -> List[str]:
    cleaned = clean_text(text)
    if not cleaned:
        return []
    return build_splitter(chunk_size, chunk_overlap).split_text(cleaned)


class DocumentIndexer:
    def __init__(
        self,
        embedder: Optional[Embedder],
        store: Optional[VectorStore],
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def index_document(
        self,
        bot_id: str,
        text: str,
        title: str,
        source: str,
        document_id: Optional[str] = None,
    ) -> IndexingStats:
        if self.embedder is None or self.store is None:
            raise CapabilityMissingError("An embedding provider and a vector store are required for indexing")

        doc_id = document_id or str(uuid.uuid4())
        start = time.monotonic()
        cleaned = clean_text(text)
        pieces = split_text(cleaned, self.chunk_size, self.chunk_overlap)

        self.store.create_collection(bot_id)
        vectors = self.embedder.embed_batch(pieces)
        chunks = [
            EmbeddedChunk(
                text=piece,
                embedding=vector,
                metadata={
                    "document_id": doc_id,
                    "bot_id": bot_id,
                    "source": source,
                    "title": title,
                    "chunk_index": idx,
                    "total_chunks": len(pieces),
                    "word_count": len(piece.split()),
                },
            )
            for idx, (piece, vector) in enumerate(zip(pieces, vectors))
        ]
        self.store.upsert(bot_id, chunks)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info("Indexed %s for bot %s: %d chunks in %d ms", title, bot_id, len(chunks), elapsed_ms)
        return IndexingStats(
            document_id=doc_id,
            document_title=title,
            total_chunks=len(chunks),
            total_characters=len(cleaned),
            processing_time_ms=elapsed_ms,
        )


def knowledge_stats(store: Optional[VectorStore], bot_id: str) -> Optional[Dict[str, object]]:
    if store is None:
        return None
    try:
        points = store.stats(bot_id).get("count", 0)
    except Exception as exc:
        logger.warning("Could not read vector stats for bot %s: %s", bot_id, exc)
        points = 0
    size_mb = points * BYTES_PER_VECTOR / 1024 / 1024
    return {"total_chunks": points, "collection_size_mb": f"{size_mb:.2f} MB"}
