import pytest

from botengine.errors import CapabilityMissingError
from botengine.ingestion import DocumentIndexer, clean_text, knowledge_stats, split_text
from botengine.vectorstore import InMemoryVectorStore

from conftest import FakeEmbedder


def test_clean_text_collapses_spaces_but_keeps_paragraphs():
    assert clean_text("  a \t b\n\n\n\nc  ") == "a b\n\nc"


def test_short_text_is_one_chunk():
    assert split_text("Library hours are 8 to 10.") == ["Library hours are 8 to 10."]


def test_blank_text_has_no_chunks():
    assert split_text(" \n\n ") == []


def test_paragraphs_split_first():
    assert split_text("para one.\n\npara two.", chunk_size=15, chunk_overlap=0) == ["para one.", "para two."]


def test_long_text_chunks_are_bounded_and_overlap():
    text = " ".join(f"word{i}" for i in range(600))
    chunks = split_text(text)
    assert len(chunks) > 1
    assert all(len(c) <= 1000 for c in chunks)
    assert chunks[1].split()[0] in chunks[0].split()


def test_index_document_embeds_and_stores_chunks():
    text = "The library opens at 8am."
    store = InMemoryVectorStore()
    indexer = DocumentIndexer(FakeEmbedder({text: [1.0, 0.0, 0.0]}), store)

    stats = indexer.index_document("b", text, title="Handbook", source="handbook.pdf", document_id="doc1")

    assert stats.document_id == "doc1"
    assert stats.total_chunks == 1
    assert stats.total_characters == len(text)
    hit = store.search("b", [1.0, 0.0, 0.0])[0]
    assert hit.id == "doc1-0"
    assert hit.title == "Handbook"
    assert hit.metadata["source"] == "handbook.pdf"
    assert hit.metadata["total_chunks"] == 1


def test_index_document_generates_document_id():
    stats = DocumentIndexer(FakeEmbedder(), InMemoryVectorStore()).index_document("b", "text", "T", "t.txt")
    assert stats.document_id


@pytest.mark.parametrize("embedder, store", [(None, InMemoryVectorStore()), (FakeEmbedder(), None)])
def test_indexing_requires_embedder_and_store(embedder, store):
    with pytest.raises(CapabilityMissingError):
        DocumentIndexer(embedder, store).index_document("b", "text", "T", "t.txt")


def test_knowledge_stats_reports_size():
    store = InMemoryVectorStore()
    DocumentIndexer(FakeEmbedder(), store).index_document("b", "some text", "T", "t.txt", document_id="d")
    assert knowledge_stats(store, "b") == {"total_chunks": 1, "collection_size_mb": "0.00 MB"}
    assert knowledge_stats(None, "b") is None


def test_knowledge_stats_formula():
    class BigStore:
        def stats(self, bot_id):
            return {"count": 1000}

    assert knowledge_stats(BigStore(), "b")["collection_size_mb"] == "2.93 MB"
