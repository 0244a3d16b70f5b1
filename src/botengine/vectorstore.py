from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import numpy as np

from .types import RetrievedChunk, utcnow

logger = logging.getLogger(__name__)

COLLECTION_PREFIX = "bot_"


def collection_name(bot_id: str) -> str:
    return f"{COLLECTION_PREFIX}{bot_id}"


@dataclass
class EmbeddedChunk:
    text: str
    embedding: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


class VectorStore(Protocol):
    def create_collection(self, bot_id: str) -> None: ...

    def upsert(self, bot_id: str, chunks: List[EmbeddedChunk]) -> int: ...

    def search(self, bot_id: str, vector: List[float], limit: int = 5, min_score: float = 0.7) -> List[RetrievedChunk]: ...

    def stats(self, bot_id: str) -> Dict[str, int]: ...

    def delete_collection(self, bot_id: str) -> None: ...


def chunk_id(metadata: Dict[str, Any], fallback: str) -> str:
    document_id = metadata.get("document_id")
    if document_id is None or metadata.get("chunk_index") is None:
        return fallback
    return f"{document_id}-{metadata['chunk_index']}"


def to_retrieved(text: str, score: float, metadata: Dict[str, Any], fallback_id: str) -> RetrievedChunk:
    return RetrievedChunk(
        id=chunk_id(metadata, fallback_id),
        text=text,
        score=float(score),
        title=metadata.get("title") or None,
        metadata=dict(metadata),
    )


class InMemoryVectorStore:
    """Cosine-similarity store over numpy arrays, one matrix per bot."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def create_collection(self, bot_id: str) -> None:
        with self._lock:
            self._collections.setdefault(
                collection_name(bot_id), {"ids": [], "vectors": [], "texts": [], "metadatas": []}
            )

    def upsert(self, bot_id: str, chunks: List[EmbeddedChunk]) -> int:
        self.create_collection(bot_id)
        with self._lock:
            col = self._collections[collection_name(bot_id)]
            for chunk in chunks:
                point_id = chunk_id(chunk.metadata, str(uuid.uuid4()))
                vector = np.asarray(chunk.embedding, dtype=np.float32)
                if point_id in col["ids"]:
                    idx = col["ids"].index(point_id)
                    col["vectors"][idx] = vector
                    col["texts"][idx] = chunk.text
                    col["metadatas"][idx] = dict(chunk.metadata)
                    continue
                col["ids"].append(point_id)
                col["vectors"].append(vector)
                col["texts"].append(chunk.text)
                col["metadatas"].append(dict(chunk.metadata))
        return len(chunks)

    def search(self, bot_id: str, vector: List[float], limit: int = 5, min_score: float = 0.7) -> List[RetrievedChunk]:
        with self._lock:
            col = self._collections.get(collection_name(bot_id))
            if not col or not col["vectors"] or limit <= 0:
                return []
            ids, texts, metadatas = list(col["ids"]), list(col["texts"]), list(col["metadatas"])
            matrix = np.vstack(col["vectors"])
        query = np.asarray(vector, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * (np.linalg.norm(query) or 1.0)
        norms[norms == 0] = 1.0
        scores = matrix @ query / norms

        order = np.argsort(-scores, kind="stable")
        results: List[RetrievedChunk] = []
        for idx in order:
            score = float(scores[idx])
            if score < min_score:
                break
            results.append(to_retrieved(texts[idx], score, metadatas[idx], ids[idx]))
            if len(results) >= limit:
                break
        return results

    def stats(self, bot_id: str) -> Dict[str, int]:
        with self._lock:
            col = self._collections.get(collection_name(bot_id))
            return {"count": len(col["ids"]) if col else 0}

    def delete_collection(self, bot_id: str) -> None:
        with self._lock:
            self._collections.pop(collection_name(bot_id), None)


class ChromaVectorStore:
    """Per-bot chromadb collections in cosine space.

    ``path`` selects a persistent client, ``host`` an HTTP client, neither an
    in-process ephemeral client.
    """

    def __init__(
        self,
        path: Optional[str] = None,
        host: Optional[str] = None,
        port: int = 8000,
        client: Any = None,
    ) -> None:
        if client is None:
            import chromadb

            if host:
                client = chromadb.HttpClient(host=host, port=port)
            elif path:
                client = chromadb.PersistentClient(path=path)
            else:
                client = chromadb.EphemeralClient()
        self.client = client

    def _collection(self, bot_id: str):
        return self.client.get_or_create_collection(
            name=collection_name(bot_id),
            metadata={"hnsw:space": "cosine"},
        )

    def create_collection(self, bot_id: str) -> None:
        self._collection(bot_id)
        logger.info("Vector collection ready for bot %s", bot_id)

    def upsert(self, bot_id: str, chunks: List[EmbeddedChunk]) -> int:
        if not chunks:
            return 0
        collection = self._collection(bot_id)
        created_at = utcnow().isoformat()
        ids, embeddings, documents, metadatas = [], [], [], []
        for chunk in chunks:
            ids.append(chunk_id(chunk.metadata, str(uuid.uuid4())))
            embeddings.append(list(chunk.embedding))
            documents.append(chunk.text)
            meta = {k: v for k, v in chunk.metadata.items() if isinstance(v, (str, int, float, bool))}
            meta.update({"bot_id": bot_id, "created_at": created_at})
            metadatas.append(meta)
        collection.upsert(ids=ids, embeddings=embeddings, documents=documents, metadatas=metadatas)
        logger.info("Stored %d chunks for bot %s", len(chunks), bot_id)
        return len(chunks)

    def search(self, bot_id: str, vector: List[float], limit: int = 5, min_score: float = 0.7) -> List[RetrievedChunk]:
        try:
            collection = self.client.get_collection(collection_name(bot_id))
            count = collection.count()
            if count == 0 or limit <= 0:
                return []
            res = collection.query(
                query_embeddings=[list(vector)],
                n_results=min(limit, count),
                include=["documents", "metadatas", "distances"],
            )
        except Exception:
            logger.exception("Vector search failed for bot %s", bot_id)
            return []

        results: List[RetrievedChunk] = []
        ids = res["ids"][0]
        for i, doc_text in enumerate(res["documents"][0]):
            # cosine distance: smaller is closer
            score = 1.0 - float(res["distances"][0][i])
            if score < min_score:
                continue
            meta = (res["metadatas"][0][i] if res.get("metadatas") else None) or {}
            results.append(to_retrieved(doc_text or "", score, meta, ids[i]))
        results.sort(key=lambda r: r.score, reverse=True)
        return results

    def stats(self, bot_id: str) -> Dict[str, int]:
        collection = self.client.get_collection(collection_name(bot_id))
        return {"count": collection.count()}

    def delete_collection(self, bot_id: str) -> None:
        self.client.delete_collection(collection_name(bot_id))
        logger.info("Deleted vector collection for bot %s", bot_id)
