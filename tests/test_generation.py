from botengine.generation import (
    APOLOGY_CONFIDENCE,
    APOLOGY_TEXT,
    GENERATION_CONFIDENCE,
    NO_CONTEXT_NOTICE,
    GenerativeResponder,
    build_system_prompt,
)
from botengine.retrieval import VectorRetriever
from botengine.types import ConversationMessage, RetrievedChunk
from botengine.vectorstore import EmbeddedChunk, InMemoryVectorStore

from conftest import FakeEmbedder, FakeProvider, make_bot, make_chunks


def no_chunks():
    return []


def test_prompt_includes_persona_knowledge_and_history():
    bot = make_bot()
    chunks = [RetrievedChunk(id="a", text="Library opens at 8am.", score=0.9, title="Handbook"),
              RetrievedChunk(id="b", text="Fees are due monthly.", score=0.8)]
    history = [ConversationMessage(sender="user", text="hi"), ConversationMessage(sender="bot", text="hello!")]

    prompt = build_system_prompt(bot, chunks, history)

    assert '"Campus Helper", a education chatbot' in prompt
    assert "Your tone: friendly" in prompt
    assert "[Handbook]\nLibrary opens at 8am.\n\n---\n\nFees are due monthly." in prompt
    assert "RECENT CONVERSATION:\nuser: hi\nbot: hello!" in prompt


def test_prompt_without_context_says_so():
    prompt = build_system_prompt(make_bot(), [], [])
    assert NO_CONTEXT_NOTICE in prompt
    assert "This is the start of the conversation." in prompt


def test_primary_success_has_fixed_confidence_and_metadata():
    primary, secondary = FakeProvider("gemini"), FakeProvider("groq")
    responder = GenerativeResponder(primary=primary, secondary=secondary)

    outcome = responder.respond(make_bot(), "library open", [], make_chunks)

    assert outcome.text == "generated answer"
    assert outcome.confidence == GENERATION_CONFIDENCE
    assert outcome.metadata["provider"] == "gemini"
    assert outcome.metadata["model"] == "gemini-model"
    assert outcome.metadata["documents_used"] == ["hb-0"]
    assert secondary.calls == []


def test_secondary_is_used_when_primary_fails():
    primary, secondary = FakeProvider("gemini", fail=True), FakeProvider("groq", text="from groq")
    outcome = GenerativeResponder(primary=primary, secondary=secondary).respond(make_bot(), "hello", [], no_chunks)
    assert outcome.text == "from groq"
    assert outcome.metadata["provider"] == "groq"
    assert len(primary.calls) == 1


def test_both_failing_returns_apology():
    responder = GenerativeResponder(primary=FakeProvider(fail=True), secondary=FakeProvider(fail=True))
    outcome = responder.respond(make_bot(), "hello", [], no_chunks)
    assert outcome.text == APOLOGY_TEXT
    assert outcome.confidence == APOLOGY_CONFIDENCE
    assert len(outcome.metadata["failures"]) == 2


def test_generation_settings_come_from_bot():
    provider = FakeProvider()
    bot = make_bot(temperature=0.2, max_tokens=123)
    GenerativeResponder(primary=provider).respond(bot, "hello", [], no_chunks)
    assert provider.calls[0]["temperature"] == 0.2
    assert provider.calls[0]["max_tokens"] == 123
    assert provider.calls[0]["user_message"] == "hello"


def test_rag_disabled_skips_retrieval():
    provider = FakeProvider()
    outcome = GenerativeResponder(primary=provider).respond(
        make_bot(rag_enabled=False), "library open", [], make_chunks
    )
    assert outcome.metadata["documents_used"] == []
    assert NO_CONTEXT_NOTICE in provider.calls[0]["system_prompt"]


def test_vector_retrieval_preferred_over_keywords():
    store = InMemoryVectorStore()
    store.upsert("bot1", [EmbeddedChunk(text="Vector fact.", embedding=[1.0, 0.0, 0.0],
                                        metadata={"document_id": "v", "chunk_index": 0, "title": "Vec"})])
    vector = VectorRetriever(FakeEmbedder({"library open": [1.0, 0.0, 0.0]}), store)
    provider = FakeProvider()

    outcome = GenerativeResponder(primary=provider, vector_retriever=vector).respond(
        make_bot(), "library open", [], make_chunks
    )

    assert outcome.metadata["documents_used"] == ["v-0"]
    assert "[Vec]\nVector fact." in provider.calls[0]["system_prompt"]


def test_empty_vector_result_falls_back_to_keywords():
    vector = VectorRetriever(FakeEmbedder(fail=True), InMemoryVectorStore())
    outcome = GenerativeResponder(primary=FakeProvider(), vector_retriever=vector).respond(
        make_bot(), "library open", [], make_chunks
    )
    assert outcome.metadata["documents_used"] == ["hb-0"]


def test_unavailable_without_providers():
    assert not GenerativeResponder().available
    assert GenerativeResponder(secondary=FakeProvider()).available


def test_raising_primary_falls_through_to_secondary():
    primary, secondary = FakeProvider("gemini", raises=True), FakeProvider("groq", text="from groq")
    outcome = GenerativeResponder(primary=primary, secondary=secondary).respond(make_bot(), "hello", [], no_chunks)
    assert outcome.text == "from groq"
    assert outcome.metadata["provider"] == "groq"


def test_raising_providers_end_in_apology():
    responder = GenerativeResponder(primary=FakeProvider("gemini", raises=True), secondary=FakeProvider("groq", raises=True))
    outcome = responder.respond(make_bot(), "hello", [], no_chunks)
    assert outcome.text == APOLOGY_TEXT
    assert [f["provider"] for f in outcome.metadata["failures"]] == ["gemini", "groq"]
    assert "provider exploded" in outcome.metadata["failures"][0]["error"]
