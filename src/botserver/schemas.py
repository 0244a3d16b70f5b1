from typing import Any, Dict, Optional

from pydantic import BaseModel


class ResolveRequest(BaseModel):
    message: Any = None
    session_id: Optional[str] = None


class ResponseText(BaseModel):
    text: str


class ResolveResponse(BaseModel):
    response: ResponseText
    intent: Optional[str] = None
    confidence: float
    source: str
    title: Optional[str] = None
    metadata: Dict[str, Any] = {}


class KnowledgeStats(BaseModel):
    total_chunks: int
    collection_size_mb: str
