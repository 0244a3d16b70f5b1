import random
from typing import Dict, List, Optional

import pytest

from botengine.generation import GenerativeResponder
from botengine.router import ResponseRouter
from botengine.stores import InMemoryBotStore, InMemoryConversationStore, InMemoryUnrecognizedSink
from botengine.types import (
    AIConfig,
    Bot,
    BotConfig,
    ChunkMetadata,
    Intent,
    IntentResponse,
    KnowledgeChunk,
    ProviderResult,
)
from botengine.unrecognized import UnrecognizedQueryLogger


class FakeProvider:
    def __init__(self, name: str = "fake", text: str = "generated answer", fail: bool = False, raises: bool = False):
        self.name = name
        self.model = f"{name}-model"
        self.text = text
        self.fail = fail
        self.raises = raises
        self.calls: List[Dict[str, object]] = []

    def complete(self, system_prompt, user_message, temperature, max_tokens):
        self.calls.append(
            {"system_prompt": system_prompt, "user_message": user_message,
             "temperature": temperature, "max_tokens": max_tokens}
        )
        if self.raises:
            raise RuntimeError("provider exploded")
        if self.fail:
            return ProviderResult.failure(self.name, "empty completion")
        return ProviderResult.success(self.name, self.text, model=self.model, tokens_used=42)


class FakeEmbedder:
    """Looks vectors up by exact text; unknown text embeds to a zero vector."""

    dimension = 3

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, fail: bool = False):
        self.vectors = vectors or {}
        self.fail = fail
        self.queries: List[str] = []

    def embed(self, text):
        if self.fail:
            raise RuntimeError("embedding service down")
        return self.vectors.get(text, [0.0, 0.0, 0.0])

    def embed_query(self, query):
        self.queries.append(query)
        return self.embed(query)

    def embed_batch(self, texts):
        return [self.embed(t) for t in texts]


def make_bot(bot_id: str = "bot1", mode: str = "intent_only", **ai_overrides) -> Bot:
    threshold = ai_overrides.pop("confidence_threshold", 0.7)
    return Bot(
        id=bot_id,
        name="Campus Helper",
        bot_type="education",
        description="Answers questions about courses.",
        config=BotConfig(
            tone="friendly",
            confidence_threshold=threshold,
            fallback_messages=["Sorry, I did not get that."],
            ai_mode=mode,
            ai_config=AIConfig(**ai_overrides),
        ),
    )


def make_intents() -> List[Intent]:
    return [
        Intent(
            name="greeting",
            display_name="Greeting",
            training_phrases=["hello", "good morning"],
            responses=[IntentResponse(text="Hello there!")],
            priority=1,
        ),
        Intent(
            name="courses",
            display_name="Courses",
            training_phrases=["What are the courses available"],
            responses=[IntentResponse(text="We offer CS and Design.")],
            priority=5,
        ),
    ]


def make_chunks() -> List[KnowledgeChunk]:
    return [
        KnowledgeChunk(
            text="The library is open from 8am to 10pm on weekdays.",
            metadata=ChunkMetadata(title="Handbook", source="handbook.pdf", chunk_index=0, document_id="hb"),
        ),
        KnowledgeChunk(
            text="Tuition fees are due at the start of each semester and can be paid online.",
            metadata=ChunkMetadata(title="Handbook", source="handbook.pdf", chunk_index=1, document_id="hb"),
        ),
    ]


@pytest.fixture
def bot_store():
    store = InMemoryBotStore()
    for mode in ("intent_only", "llm_first", "hybrid"):
        store.add_bot(make_bot(mode, mode=mode), intents=make_intents(), chunks=make_chunks())
    store.add_bot(make_bot("strict", mode="llm_first", fallback_to_intent=False), intents=make_intents())
    return store


@pytest.fixture
def conversations():
    return InMemoryConversationStore()


@pytest.fixture
def sink():
    return InMemoryUnrecognizedSink()


@pytest.fixture
def build_router(bot_store, conversations, sink):
    def _build(primary=None, secondary=None, vector_retriever=None):
        responder = GenerativeResponder(primary=primary, secondary=secondary, vector_retriever=vector_retriever)
        return ResponseRouter(
            bot_store=bot_store,
            conversation_store=conversations,
            responder=responder,
            unrecognized_logger=UnrecognizedQueryLogger(sink),
            rng=random.Random(0),
        )

    return _build
