import logging
import random
from typing import List, Optional

from .errors import BotNotFoundError
from .gate import accepts_deterministic, accepts_generation
from .generation import GenerativeResponder
from .guardrails import validate_utterance
from .intents import IntentResolver
from .retrieval import LexicalRetriever
from .stores import BotStore, ConversationStore
from .text import normalize_text
from .types import AIMode, Bot, ConversationMessage, RouterResult, Source
from .unrecognized import UnrecognizedQueryLogger

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_TEXT = "I'm not sure I understood. Could you rephrase?"


class ResponseRouter:
    """Picks the reply for one utterance according to the bot's routing mode.

    Modes:
      intent_only  intent -> knowledge -> fallback
      llm_first    generation; below 0.5 confidence the intent path answers
                   unless the bot disables fallback_to_intent
      hybrid       intent path; generation when it falls short of the
                   bot's confidence_threshold or ends in fallback

    Without a generation provider every mode behaves like intent_only.
    """

    def __init__(
        self,
        bot_store: BotStore,
        conversation_store: Optional[ConversationStore] = None,
        intent_resolver: Optional[IntentResolver] = None,
        lexical_retriever: Optional[LexicalRetriever] = None,
        responder: Optional[GenerativeResponder] = None,
        unrecognized_logger: Optional[UnrecognizedQueryLogger] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.bot_store = bot_store
        self.conversation_store = conversation_store
        self.rng = rng or random.Random()
        self.intent_resolver = intent_resolver or IntentResolver(rng=self.rng)
        self.lexical_retriever = lexical_retriever or LexicalRetriever()
        self.responder = responder
        self.unrecognized_logger = unrecognized_logger or UnrecognizedQueryLogger(None)

    @property
    def generation_available(self) -> bool:
        return self.responder is not None and self.responder.available

    def resolve(self, bot_id: str, utterance: str, session_id: Optional[str] = None) -> RouterResult:
        validate_utterance(utterance)
        bot = self._load_bot(bot_id)

        mode = bot.config.ai_mode
        if mode == AIMode.INTENT_ONLY.value or not self.generation_available:
            return self.resolve_deterministic(bot, utterance, session_id)

        if mode == AIMode.LLM_FIRST.value:
            result = self._generate(bot, utterance, session_id)
            if accepts_generation(result.confidence, bot.config.ai_config.fallback_to_intent):
                return result
            logger.debug("Generation confidence %.2f below gate for bot %s", result.confidence, bot.id)
            return self.resolve_deterministic(bot, utterance, session_id)

        if mode == AIMode.HYBRID.value:
            result = self.resolve_deterministic(bot, utterance, session_id)
            if accepts_deterministic(result, bot.config.confidence_threshold):
                return result
            logger.debug("Escalating bot %s to generation (%s, %.2f)", bot.id, result.source.value, result.confidence)
            return self._generate(bot, utterance, session_id)

        logger.warning("Unknown ai_mode %r for bot %s, using intent path", mode, bot.id)
        return self.resolve_deterministic(bot, utterance, session_id)

    def resolve_deterministic(self, bot: Bot, utterance: str, session_id: Optional[str] = None) -> RouterResult:
        normalized = normalize_text(utterance)

        match = self.intent_resolver.resolve(self.bot_store.find_active_intents(bot.id), normalized)
        if match is not None:
            return RouterResult(
                response_text=match.response_text,
                intent=match.intent.name,
                confidence=match.confidence,
                source=Source.INTENT,
            )

        knowledge = self.lexical_retriever.find(self.bot_store.find_active_completed_chunks(bot.id), normalized)
        if knowledge is not None:
            return RouterResult(
                response_text=knowledge.snippet,
                intent=None,
                confidence=knowledge.confidence,
                source=Source.KNOWLEDGE_BASE,
                title=knowledge.title,
            )

        self.unrecognized_logger.log(bot.id, utterance, session_id)
        messages = bot.config.fallback_messages or [DEFAULT_FALLBACK_TEXT]
        return RouterResult(
            response_text=self.rng.choice(messages),
            intent=None,
            confidence=0.0,
            source=Source.FALLBACK,
        )

    def load_context(self, bot: Bot, session_id: Optional[str]) -> List[ConversationMessage]:
        """Last ``context_window_size`` messages of the session, oldest first."""
        if not session_id or self.conversation_store is None:
            return []
        limit = bot.config.ai_config.context_window_size
        try:
            return self.conversation_store.load_recent_messages(bot.id, session_id, limit)
        except Exception as exc:
            logger.warning("Could not load conversation %s for bot %s: %s", session_id, bot.id, exc)
            return []

    def _load_bot(self, bot_id: str) -> Bot:
        bot = self.bot_store.find_bot(bot_id)
        if bot is None:
            raise BotNotFoundError(bot_id)
        return bot

    def _generate(self, bot: Bot, utterance: str, session_id: Optional[str]) -> RouterResult:
        history = self.load_context(bot, session_id)
        outcome = self.responder.respond(
            bot,
            utterance,
            history,
            load_chunks=lambda: self.bot_store.find_active_completed_chunks(bot.id),
        )
        return RouterResult(
            response_text=outcome.text,
            intent=None,
            confidence=outcome.confidence,
            source=Source.LLM_GENERATION,
            metadata=outcome.metadata,
        )
