import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .llm import GenerationProvider
from .retrieval import LexicalRetriever, VectorRetriever
from .types import Bot, ConversationMessage, KnowledgeChunk, ProviderResult, RetrievedChunk

logger = logging.getLogger(__name__)

GENERATION_CONFIDENCE = 0.95
APOLOGY_CONFIDENCE = 0.3
APOLOGY_TEXT = (
    "I'm having trouble processing that right now. "
    "Please try again or ask to speak with a human agent."
)
RAG_LIMIT = 5
VECTOR_MIN_SCORE = 0.5

NO_CONTEXT_NOTICE = (
    "No specific knowledge base documents were retrieved. Answer based on your general knowledge "
    "and the bot description, but prefer saying \"I don't have that information in my knowledge base\" "
    "if the question is very specific to the organization."
)

RULES = """RULES:
1. Answer using the knowledge base above when relevant.
2. If the answer is not in the knowledge base, say so and offer to connect the user with a human if needed.
3. Keep responses concise (2-3 short paragraphs max unless the user asks for detail).
4. Do not make up specific facts (dates, prices, names) not present in the context.
5. If the user needs to book, pay, or submit a form, say so clearly and that they can be connected to the right flow."""


@dataclass
class GenerationOutcome:
    text: str
    confidence: float
    metadata: Dict[str, Any] = field(default_factory=dict)


def format_knowledge(chunks: Sequence[RetrievedChunk]) -> str:
    if not chunks:
        return NO_CONTEXT_NOTICE
    blocks = [(f"[{c.title}]\n" if c.title else "") + c.text for c in chunks]
    return "KNOWLEDGE BASE CONTEXT (use this to answer accurately):\n" + "\n\n---\n\n".join(blocks)


def format_history(history: Sequence[ConversationMessage]) -> str:
    if not history:
        return "This is the start of the conversation."
    lines = [f"{m.sender}: {m.text}" for m in history]
    return "RECENT CONVERSATION:\n" + "\n".join(lines)


def build_system_prompt(bot: Bot, chunks: Sequence[RetrievedChunk], history: Sequence[ConversationMessage]) -> str:
    return (
        f'You are an AI assistant for "{bot.name or "Assistant"}", a {bot.bot_type or "custom"} chatbot.\n\n'
        f"Your role: {bot.description or 'Help users with their questions.'}\n"
        f"Your tone: {bot.config.tone or 'professional'} (be helpful, accurate, and concise).\n\n"
        f"{format_knowledge(chunks)}\n\n"
        f"{format_history(history)}\n\n"
        f"{RULES}"
    )


class GenerativeResponder:
    """Grounded generation over a primary provider with a secondary fallback."""

    def __init__(
        self,
        primary: Optional[GenerationProvider] = None,
        secondary: Optional[GenerationProvider] = None,
        vector_retriever: Optional[VectorRetriever] = None,
        lexical_retriever: Optional[LexicalRetriever] = None,
        rag_limit: int = RAG_LIMIT,
        vector_min_score: float = VECTOR_MIN_SCORE,
    ) -> None:
        self.providers: List[GenerationProvider] = [p for p in (primary, secondary) if p is not None]
        self.vector_retriever = vector_retriever
        self.lexical_retriever = lexical_retriever or LexicalRetriever()
        self.rag_limit = rag_limit
        self.vector_min_score = vector_min_score

    @property
    def available(self) -> bool:
        return bool(self.providers)

    def retrieve_context(
        self,
        bot_id: str,
        query: str,
        limit: int,
        load_chunks: Callable[[], List[KnowledgeChunk]],
    ) -> List[RetrievedChunk]:
        if limit <= 0:
            return []
        if self.vector_retriever is not None and self.vector_retriever.available:
            found = self.vector_retriever.retrieve(bot_id, query, limit=limit, min_score=self.vector_min_score)
            if found:
                return found
            logger.debug("No vector matches for bot %s, using keyword chunks", bot_id)
        return self.lexical_retriever.rank(load_chunks(), query, limit=limit)

    def respond(
        self,
        bot: Bot,
        utterance: str,
        history: Sequence[ConversationMessage],
        load_chunks: Callable[[], List[KnowledgeChunk]],
    ) -> GenerationOutcome:
        ai = bot.config.ai_config
        limit = self.rag_limit if ai.rag_enabled else 0
        docs = self.retrieve_context(bot.id, utterance, limit, load_chunks)
        system_prompt = build_system_prompt(bot, docs, history)
        documents_used = [d.id for d in docs]

        failures: List[Dict[str, str]] = []
        for provider in self.providers:
            try:
                result = provider.complete(system_prompt, utterance, ai.temperature, ai.max_tokens)
            except Exception as exc:
                logger.warning("Provider %s raised for bot %s: %s", getattr(provider, "name", "unknown"), bot.id, exc)
                result = ProviderResult.failure(getattr(provider, "name", "unknown"), str(exc))
            if result.ok:
                return GenerationOutcome(
                    text=result.text,
                    confidence=GENERATION_CONFIDENCE,
                    metadata={
                        "provider": result.provider,
                        "model": result.model,
                        "tokens_used": result.tokens_used,
                        "documents_used": documents_used,
                    },
                )
            failures.append({"provider": result.provider, "error": result.error or "unknown"})

        logger.warning("All generation providers failed for bot %s: %s", bot.id, failures)
        return GenerationOutcome(
            text=APOLOGY_TEXT,
            confidence=APOLOGY_CONFIDENCE,
            metadata={"failures": failures, "documents_used": documents_used},
        )
