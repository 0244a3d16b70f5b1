import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .cache import TTLCache
from .embedding import Embedder
from .text import FUZZY_WORD_THRESHOLD, NON_WORD_RE, get_words, has_similar_word, normalize_text
from .types import KnowledgeChunk, RetrievedChunk
from .vectorstore import VectorStore

logger = logging.getLogger(__name__)

KNOWLEDGE_CONFIDENCE = 0.7
SNIPPET_CHARS = 400
GROUNDING_CHARS = 1200

FIRST_MATCH = "first_match"
BEST_SCORE = "best_score"


@dataclass
class KnowledgeMatch:
    chunk: KnowledgeChunk
    snippet: str
    match_count: int
    confidence: float = KNOWLEDGE_CONFIDENCE

    @property
    def title(self) -> Optional[str]:
        return self.chunk.metadata.title or None


def query_words(query: str) -> List[str]:
    return get_words(normalize_text(query), 2)


def count_matches(words: Sequence[str], chunk_text: str) -> int:
    """Query words found literally in the chunk or close to one of its words."""
    lowered = chunk_text.lower()
    chunk_words = get_words(NON_WORD_RE.sub(" ", lowered), 2)
    return sum(1 for w in words if w in lowered or has_similar_word(w, chunk_words, FUZZY_WORD_THRESHOLD))


def qualifies(match_count: int, word_count: int) -> bool:
    if word_count == 0:
        return False
    if word_count == 1:
        return match_count >= 1
    return match_count >= min(2, word_count)


class LexicalRetriever:
    """Keyword and fuzzy-word overlap between a query and knowledge chunks.

    ``first_match`` returns the first qualifying chunk in storage order.
    ``best_score`` scans every chunk and keeps the one with the most matched
    words, earliest chunk winning ties.
    """

    def __init__(self, ranking: str = FIRST_MATCH) -> None:
        if ranking not in (FIRST_MATCH, BEST_SCORE):
            raise ValueError(f"Unsupported lexical ranking: {ranking}")
        self.ranking = ranking

    def find(self, chunks: Sequence[KnowledgeChunk], query: str) -> Optional[KnowledgeMatch]:
        words = query_words(query)
        if not words:
            return None

        best: Optional[KnowledgeMatch] = None
        for chunk in chunks:
            match_count = count_matches(words, chunk.text)
            if not qualifies(match_count, len(words)):
                continue
            if best is None or match_count > best.match_count:
                best = KnowledgeMatch(chunk=chunk, snippet=chunk.text[:SNIPPET_CHARS], match_count=match_count)
            if self.ranking == FIRST_MATCH or match_count == len(words):
                break
        return best

    def rank(self, chunks: Sequence[KnowledgeChunk], query: str, limit: int = 5) -> List[RetrievedChunk]:
        words = query_words(query)
        if not words or limit <= 0:
            return []

        scored: List[RetrievedChunk] = []
        seen = set()
        for pos, chunk in enumerate(chunks):
            score = count_matches(words, chunk.text) / len(words)
            if score <= 0:
                continue
            # chunks without a document id can share one; position keeps them apart
            point_id = chunk.id if chunk.id not in seen else f"{chunk.id}#{pos}"
            seen.add(point_id)
            scored.append(
                RetrievedChunk(
                    id=point_id,
                    text=chunk.text[:GROUNDING_CHARS],
                    score=score,
                    title=chunk.metadata.title or None,
                    metadata={"source": chunk.metadata.source, "chunk_index": chunk.metadata.chunk_index},
                )
            )
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored[:limit]


class VectorRetriever:
    def __init__(
        self,
        embedder: Optional[Embedder],
        store: Optional[VectorStore],
        query_cache: Optional[TTLCache] = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.query_cache = query_cache if query_cache is not None else TTLCache(ttl_seconds=900)

    @property
    def available(self) -> bool:
        return self.embedder is not None and self.store is not None

    def retrieve(self, bot_id: str, query: str, limit: int = 5, min_score: float = 0.5) -> List[RetrievedChunk]:
        """Nearest chunks by cosine similarity; empty on any provider failure."""
        if not self.available or limit <= 0:
            return []
        text = query.strip()
        if not text:
            return []
        try:
            vector = self.query_cache.get_or_set(text, lambda: self.embedder.embed_query(text))
            results = self.store.search(bot_id, vector, limit=limit, min_score=min_score)
        except Exception as exc:
            logger.warning("Vector retrieval failed for bot %s: %s", bot_id, exc)
            return []
        results = [r for r in results if r.score >= min_score]
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]
