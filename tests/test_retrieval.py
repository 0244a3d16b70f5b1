import pytest

from botengine.retrieval import BEST_SCORE, KNOWLEDGE_CONFIDENCE, LexicalRetriever, VectorRetriever
from botengine.types import ChunkMetadata, KnowledgeChunk, RetrievedChunk
from botengine.vectorstore import EmbeddedChunk, InMemoryVectorStore

from conftest import FakeEmbedder


def chunk(text, idx=0, title="Guide"):
    return KnowledgeChunk(text=text, metadata=ChunkMetadata(title=title, source="guide.txt", chunk_index=idx, document_id="g"))


CHUNKS = [
    chunk("Parking permits are sold at the front desk.", 0),
    chunk("The library opens at 8am. Library cards are issued at the library desk.", 1),
    chunk("Library opening hours: the library opens at 8am and closes at 10pm.", 2),
]


class TestLexicalRetriever:
    def test_returns_first_qualifying_chunk_in_storage_order(self):
        match = LexicalRetriever().find(CHUNKS, "library opens")
        assert match.chunk is CHUNKS[1]
        assert match.confidence == KNOWLEDGE_CONFIDENCE
        assert match.title == "Guide"

    def test_best_score_prefers_chunk_with_more_matched_words(self):
        query = "library desk hours closes"
        assert LexicalRetriever().find(CHUNKS, query).chunk is CHUNKS[1]
        assert LexicalRetriever(BEST_SCORE).find(CHUNKS, query).chunk is CHUNKS[2]

    def test_single_word_query_needs_one_match(self):
        assert LexicalRetriever().find(CHUNKS, "parking").chunk is CHUNKS[0]

    def test_multi_word_query_needs_two_matches(self):
        assert LexicalRetriever().find(CHUNKS, "parking zeppelin") is None

    def test_fuzzy_word_match(self):
        assert LexicalRetriever().find(CHUNKS, "librery cards").chunk is CHUNKS[1]

    def test_query_without_words_never_matches(self):
        assert LexicalRetriever().find(CHUNKS, "a ?") is None

    def test_snippet_is_truncated(self):
        long_chunk = chunk("library " * 100)
        assert len(LexicalRetriever().find([long_chunk], "library").snippet) == 400

    def test_rank_orders_by_matched_fraction(self):
        ranked = LexicalRetriever().rank(CHUNKS, "library opening hours", limit=5)
        assert [r.id for r in ranked][:1] == ["g-2"]
        assert all(a.score >= b.score for a, b in zip(ranked, ranked[1:]))
        assert all(r.score > 0 for r in ranked)

    def test_rank_respects_limit(self):
        assert len(LexicalRetriever().rank(CHUNKS, "library desk", limit=1)) == 1
        assert LexicalRetriever().rank(CHUNKS, "library", limit=0) == []

    def test_unknown_ranking_is_rejected(self):
        with pytest.raises(ValueError):
            LexicalRetriever("random")


def vector_store_with(points):
    store = InMemoryVectorStore()
    store.upsert(
        "bot1",
        [
            EmbeddedChunk(text=text, embedding=vec, metadata={"document_id": "d", "chunk_index": i, "title": "Doc"})
            for i, (text, vec) in enumerate(points)
        ],
    )
    return store


class TestVectorRetriever:
    def test_results_above_min_score_sorted_descending(self):
        store = vector_store_with([
            ("far", [0.0, 1.0, 0.0]),
            ("close", [1.0, 0.1, 0.0]),
            ("closest", [1.0, 0.0, 0.0]),
            ("medium", [1.0, 1.0, 0.0]),
        ])
        embedder = FakeEmbedder({"search": [1.0, 0.0, 0.0]})
        results = VectorRetriever(embedder, store).retrieve("bot1", "search", limit=5, min_score=0.6)

        assert [r.text for r in results] == ["closest", "close", "medium"]
        assert all(r.score >= 0.6 for r in results)
        assert results[0].id == "d-2"
        assert results[0].title == "Doc"

    def test_limit_is_applied(self):
        store = vector_store_with([("a", [1.0, 0.0, 0.0]), ("b", [1.0, 0.1, 0.0])])
        embedder = FakeEmbedder({"q": [1.0, 0.0, 0.0]})
        assert len(VectorRetriever(embedder, store).retrieve("bot1", "q", limit=1, min_score=0.0)) == 1

    def test_provider_failure_returns_empty(self):
        store = vector_store_with([("a", [1.0, 0.0, 0.0])])
        assert VectorRetriever(FakeEmbedder(fail=True), store).retrieve("bot1", "q") == []

    def test_store_failure_returns_empty(self):
        class BrokenStore:
            def search(self, *args, **kwargs):
                raise ConnectionError("vector db unreachable")

        assert VectorRetriever(FakeEmbedder(), BrokenStore()).retrieve("bot1", "q") == []

    def test_filters_results_a_store_returns_below_threshold(self):
        class LooseStore:
            def search(self, bot_id, vector, limit=5, min_score=0.7):
                return [RetrievedChunk(id="low", text="low", score=0.2), RetrievedChunk(id="hi", text="hi", score=0.9)]

        results = VectorRetriever(FakeEmbedder(), LooseStore()).retrieve("bot1", "q", min_score=0.5)
        assert [r.id for r in results] == ["hi"]

    def test_unavailable_without_embedder_or_store(self):
        assert not VectorRetriever(None, InMemoryVectorStore()).available
        assert not VectorRetriever(FakeEmbedder(), None).available
        assert VectorRetriever(None, None).retrieve("bot1", "q") == []

    def test_query_embeddings_are_cached(self):
        embedder = FakeEmbedder({"q": [1.0, 0.0, 0.0]})
        retriever = VectorRetriever(embedder, vector_store_with([("a", [1.0, 0.0, 0.0])]))
        retriever.retrieve("bot1", "q")
        retriever.retrieve("bot1", "q")
        assert embedder.queries == ["q"]


def test_rank_keeps_chunks_without_document_id():
    no_doc = [
        KnowledgeChunk(text="library hours are 8 to 10", metadata=ChunkMetadata(source="a.pdf", chunk_index=0)),
        KnowledgeChunk(text="library fines are 1 dollar a day", metadata=ChunkMetadata(source="b.pdf", chunk_index=0)),
    ]
    ranked = LexicalRetriever().rank(no_doc, "library fines")
    assert [r.id for r in ranked] == ["b.pdf-0", "a.pdf-0"]


def test_rank_ids_stay_unique_when_metadata_collides():
    bare = [KnowledgeChunk(text="library hours"), KnowledgeChunk(text="library fines")]
    ranked = LexicalRetriever().rank(bare, "library fines")
    assert [r.text for r in ranked] == ["library fines", "library hours"]
    assert len({r.id for r in ranked}) == 2
