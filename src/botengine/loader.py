"""Builds an in-memory bot store from a JSON document or a JSONL file (one bot per line).

Record shape::

    {"id": "demo", "name": "Campus Bot", "description": "...",
     "config": {"ai_mode": "hybrid", "ai_config": {"temperature": 0.3}},
     "intents": [{"name": "courses", "training_phrases": ["..."],
                  "responses": [{"text": "...", "variations": ["..."]}], "priority": 1}],
     "knowledge": [{"title": "Handbook", "source": "handbook.pdf", "status": "completed",
                    "chunks": ["...", {"text": "..."}]}]}
"""

import json
from pathlib import Path
from typing import Any, Dict, List

from .stores import InMemoryBotStore
from .types import AIConfig, Bot, BotConfig, ChunkMetadata, Intent, IntentResponse, KnowledgeChunk


def load_bot_store(path: str) -> InMemoryBotStore:
    data_path = Path(path)
    if not data_path.exists():
        raise FileNotFoundError(f"Bot data not found: {data_path}")

    with data_path.open("r", encoding="utf-8") as f:
        if data_path.suffix.lower() == ".jsonl":
            records = [json.loads(line) for line in f if line.strip()]
        else:
            payload = json.load(f)
            records = payload.get("bots", []) if isinstance(payload, dict) else payload

    store = InMemoryBotStore()
    for record in records:
        bot = parse_bot(record)
        store.add_bot(
            bot,
            intents=[parse_intent(i) for i in record.get("intents", [])],
            chunks=parse_knowledge(record.get("knowledge", [])),
        )
    return store


def parse_bot(record: Dict[str, Any]) -> Bot:
    cfg = dict(record.get("config", {}))
    ai_config = AIConfig(**cfg.pop("ai_config", {}))
    return Bot(
        id=str(record["id"]),
        name=record.get("name", "Assistant"),
        bot_type=record.get("type", "custom"),
        description=record.get("description", ""),
        config=BotConfig(ai_config=ai_config, **cfg),
    )


def parse_intent(record: Dict[str, Any]) -> Intent:
    phrases = [p["text"] if isinstance(p, dict) else p for p in record.get("training_phrases", [])]
    responses = [
        IntentResponse(text=r["text"], variations=list(r.get("variations", [])))
        if isinstance(r, dict)
        else IntentResponse(text=r)
        for r in record.get("responses", [])
    ]
    return Intent(
        name=record["name"],
        display_name=record.get("display_name", record["name"]),
        training_phrases=phrases,
        responses=responses,
        priority=int(record.get("priority", 0)),
        is_active=bool(record.get("is_active", True)),
    )


def parse_knowledge(items: List[Dict[str, Any]]) -> List[KnowledgeChunk]:
    """Chunks of active, completed knowledge items in storage order."""
    chunks: List[KnowledgeChunk] = []
    for doc_idx, item in enumerate(items):
        if not item.get("is_active", True) or item.get("status", "completed") != "completed":
            continue
        document_id = str(item.get("id", f"doc{doc_idx}"))
        for idx, raw in enumerate(item.get("chunks", [])):
            text = raw.get("text", "") if isinstance(raw, dict) else str(raw)
            embedding = raw.get("embedding") if isinstance(raw, dict) else None
            chunks.append(
                KnowledgeChunk(
                    text=text,
                    metadata=ChunkMetadata(
                        title=item.get("title", ""),
                        source=item.get("source", ""),
                        chunk_index=idx,
                        document_id=document_id,
                    ),
                    embedding=embedding,
                )
            )
    return chunks
