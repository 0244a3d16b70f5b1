from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class Source(str, Enum):
    INTENT = "intent"
    KNOWLEDGE_BASE = "knowledge_base"
    LLM_GENERATION = "llm_generation"
    FALLBACK = "fallback"


class AIMode(str, Enum):
    INTENT_ONLY = "intent_only"
    LLM_FIRST = "llm_first"
    HYBRID = "hybrid"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IntentResponse:
    text: str
    variations: List[str] = field(default_factory=list)


@dataclass
class Intent:
    name: str
    display_name: str = ""
    training_phrases: List[str] = field(default_factory=list)
    responses: List[IntentResponse] = field(default_factory=list)
    priority: int = 0
    is_active: bool = True


@dataclass
class ChunkMetadata:
    title: str = ""
    source: str = ""
    chunk_index: int = 0
    document_id: str = ""


@dataclass
class KnowledgeChunk:
    text: str
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)
    embedding: Optional[List[float]] = None

    @property
    def id(self) -> str:
        anchor = self.metadata.document_id or self.metadata.source or "chunk"
        return f"{anchor}-{self.metadata.chunk_index}"


@dataclass
class RetrievedChunk:
    id: str
    text: str
    score: float
    title: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Resolution:
    intent: Optional[str]
    confidence: float
    source: str


@dataclass
class ConversationMessage:
    sender: str  # "user" | "bot"
    text: str
    timestamp: datetime = field(default_factory=utcnow)
    resolution: Optional[Resolution] = None
    id: Optional[str] = None


@dataclass
class AIConfig:
    temperature: float = 0.7
    max_tokens: int = 500
    rag_enabled: bool = True
    context_window_size: int = 10
    fallback_to_intent: bool = True


@dataclass
class BotConfig:
    tone: str = "professional"
    welcome_message: str = "Hello! How can I help you today?"
    confidence_threshold: float = 0.7
    fallback_messages: List[str] = field(
        default_factory=lambda: ["I'm not sure I understood. Could you rephrase?"]
    )
    ai_mode: str = AIMode.INTENT_ONLY.value
    ai_config: AIConfig = field(default_factory=AIConfig)


@dataclass
class Bot:
    id: str
    name: str = "Assistant"
    bot_type: str = "custom"
    description: str = ""
    config: BotConfig = field(default_factory=BotConfig)


@dataclass
class RouterResult:
    response_text: str
    intent: Optional[str]
    confidence: float
    source: Source
    title: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.source = Source(self.source)
        self.confidence = min(max(float(self.confidence), 0.0), 1.0)
        if self.intent is not None and self.source is not Source.INTENT:
            raise ValueError(f"intent is only allowed for source=intent, got {self.source.value}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": {"text": self.response_text},
            "intent": self.intent,
            "confidence": self.confidence,
            "source": self.source.value,
            "title": self.title,
            "metadata": self.metadata,
        }


@dataclass
class ProviderResult:
    """Outcome of one provider call: ``ok`` with text, or a failure reason."""

    ok: bool
    provider: str
    text: str = ""
    model: Optional[str] = None
    tokens_used: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def success(
        cls, provider: str, text: str, model: Optional[str] = None, tokens_used: Optional[int] = None
    ) -> "ProviderResult":
        return cls(ok=True, provider=provider, text=text, model=model, tokens_used=tokens_used)

    @classmethod
    def failure(cls, provider: str, reason: str) -> "ProviderResult":
        return cls(ok=False, provider=provider, error=reason)


@dataclass
class UnrecognizedQuery:
    bot_id: str
    text: str
    count: int = 1
    status: str = "pending"
    session_id: Optional[str] = None
    first_seen_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)
