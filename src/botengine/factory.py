import logging
from concurrent.futures import Executor
from typing import Optional

from .config import EngineSettings
from .embedding import Embedder, GeminiEmbedder, SentenceTransformerEmbedder
from .generation import GenerativeResponder
from .llm import GeminiProvider, GenerationProvider, GroqProvider, LocalTransformersProvider
from .retrieval import LexicalRetriever, VectorRetriever
from .router import ResponseRouter
from .stores import (
    BotStore,
    ConversationStore,
    InMemoryConversationStore,
    InMemoryUnrecognizedSink,
    SQLiteConversationStore,
    SQLiteUnrecognizedSink,
    UnrecognizedQuerySink,
)
from .unrecognized import UnrecognizedQueryLogger
from .vectorstore import ChromaVectorStore, VectorStore

logger = logging.getLogger(__name__)


def build_provider(name: str, settings: EngineSettings) -> Optional[GenerationProvider]:
    """A configured provider, or None when its credentials or model are missing."""
    name = (name or "none").lower()
    if name == "gemini" and settings.gemini_api_key:
        return GeminiProvider(settings.gemini_api_key, settings.gemini_model, settings.provider_timeout_sec)
    if name == "groq" and settings.groq_api_key:
        return GroqProvider(settings.groq_api_key, settings.groq_model, settings.provider_timeout_sec)
    if name == "local" and settings.local_llm_model:
        return LocalTransformersProvider(settings.local_llm_model, settings.local_llm_quantization)
    if name != "none":
        logger.info("Generation provider %s is not configured", name)
    return None


def build_embedder(settings: EngineSettings) -> Optional[Embedder]:
    backend = (settings.embedding_backend or "none").lower()
    if backend == "gemini" and settings.gemini_api_key:
        return GeminiEmbedder(
            settings.gemini_api_key,
            model=settings.embedding_model,
            timeout_sec=settings.provider_timeout_sec,
            rate_limit_delay=settings.embed_rate_limit_delay_sec,
        )
    if backend == "sentence-transformers" and settings.embedding_model:
        return SentenceTransformerEmbedder(settings.embedding_model)
    return None


def build_vector_store(settings: EngineSettings) -> Optional[VectorStore]:
    if not settings.chroma_configured:
        return None
    return ChromaVectorStore(
        path=settings.chroma_path or None,
        host=settings.chroma_host or None,
        port=settings.chroma_port,
    )


def build_router(
    settings: EngineSettings,
    bot_store: BotStore,
    conversation_store: Optional[ConversationStore] = None,
    unrecognized_sink: Optional[UnrecognizedQuerySink] = None,
    embedder: Optional[Embedder] = None,
    vector_store: Optional[VectorStore] = None,
    executor: Optional[Executor] = None,
) -> ResponseRouter:
    if conversation_store is None:
        conversation_store = (
            SQLiteConversationStore(settings.conversation_db)
            if settings.conversation_db
            else InMemoryConversationStore()
        )
    if unrecognized_sink is None:
        unrecognized_sink = (
            SQLiteUnrecognizedSink(settings.unrecognized_db)
            if settings.unrecognized_db
            else InMemoryUnrecognizedSink()
        )
    if embedder is None:
        embedder = build_embedder(settings)
    if vector_store is None:
        vector_store = build_vector_store(settings)

    lexical = LexicalRetriever(settings.lexical_ranking)
    responder = GenerativeResponder(
        primary=build_provider(settings.primary_provider, settings),
        secondary=build_provider(settings.secondary_provider, settings),
        vector_retriever=VectorRetriever(embedder, vector_store),
        lexical_retriever=LexicalRetriever(),
    )
    logger.info(
        "Router ready: providers=%s vector=%s lexical=%s",
        [p.name for p in responder.providers] or "none",
        "on" if embedder is not None and vector_store is not None else "off",
        lexical.ranking,
    )
    return ResponseRouter(
        bot_store=bot_store,
        conversation_store=conversation_store,
        lexical_retriever=lexical,
        responder=responder,
        unrecognized_logger=UnrecognizedQueryLogger(unrecognized_sink, executor),
    )
