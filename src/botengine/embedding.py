from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Protocol

from .errors import ProviderError

logger = logging.getLogger(__name__)

GEMINI_EMBEDDING_MODEL = "text-embedding-004"
GEMINI_EMBEDDING_DIM = 768
# ~55 requests/minute keeps the free tier's 60/minute ceiling
RATE_LIMIT_DELAY_SEC = 1.1


class Embedder(Protocol):
    dimension: int

    def embed(self, text: str) -> List[float]: ...

    def embed_query(self, query: str) -> List[float]: ...

    def embed_batch(self, texts: List[str]) -> List[List[float]]: ...


class RateLimitedBatchMixin:
    """Serializes batch embedding with a fixed pause between provider calls."""

    rate_limit_delay: float = RATE_LIMIT_DELAY_SEC
    sleep: Callable[[float], None] = staticmethod(time.sleep)

    def embed(self, text: str) -> List[float]:
        raise NotImplementedError

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for idx, text in enumerate(texts):
            vectors.append(self.embed(text))
            if idx < len(texts) - 1 and self.rate_limit_delay > 0:
                self.sleep(self.rate_limit_delay)
        return vectors


class GeminiEmbedder(RateLimitedBatchMixin):
    """Google Gemini embeddings through the google-genai SDK."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = GEMINI_EMBEDDING_MODEL,
        dimension: int = GEMINI_EMBEDDING_DIM,
        timeout_sec: float = 30.0,
        rate_limit_delay: float = RATE_LIMIT_DELAY_SEC,
        query_prefix: str = "search_query: ",
    ) -> None:
        from google import genai
        from google.genai import types

        self.client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_sec * 1000)),
        )
        self.model = model
        self.dimension = dimension
        self.rate_limit_delay = rate_limit_delay
        self.query_prefix = query_prefix

    def embed(self, text: str) -> List[float]:
        response = self.client.models.embed_content(model=self.model, contents=text)
        embeddings = getattr(response, "embeddings", None) or []
        values = embeddings[0].values if embeddings else None
        if not values:
            raise ProviderError(self.name, "invalid embedding response")
        return list(values)

    def embed_query(self, query: str) -> List[float]:
        return self.embed(f"{self.query_prefix}{query}")


class SentenceTransformerEmbedder(RateLimitedBatchMixin):
    """Local sentence-transformers model, loaded on first use.

    E5-style models expect ``query: `` / ``passage: `` prefixes; set both to
    empty strings for models trained without them.
    """

    name = "sentence-transformers"
    rate_limit_delay = 0.0

    def __init__(
        self,
        model_name: str,
        device: Optional[str] = None,
        dimension: int = 384,
        query_prefix: str = "query: ",
        passage_prefix: str = "passage: ",
    ) -> None:
        self.model_name = model_name
        self.device = device
        self.dimension = dimension
        self.query_prefix = query_prefix
        self.passage_prefix = passage_prefix
        self._model = None

    def _ensure_model(self):
        if self._model is not None:
            return self._model
        from sentence_transformers import SentenceTransformer  # type: ignore

        self._model = SentenceTransformer(self.model_name, device=self.device)
        self.dimension = self._model.get_sentence_embedding_dimension() or self.dimension
        logger.info("Loaded embedding model %s", self.model_name)
        return self._model

    def _encode(self, texts: List[str]) -> List[List[float]]:
        model = self._ensure_model()
        return model.encode(texts, normalize_embeddings=True).tolist()

    def embed(self, text: str) -> List[float]:
        return self._encode([f"{self.passage_prefix}{text}"])[0]

    def embed_query(self, query: str) -> List[float]:
        return self._encode([f"{self.query_prefix}{query}"])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return self._encode([f"{self.passage_prefix}{t}" for t in texts])
