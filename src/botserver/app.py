from __future__ import annotations

import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from botengine.config import EngineSettings, configure_logging
from botengine.errors import BotNotFoundError, InvalidUtteranceError
from botengine.factory import build_router, build_vector_store
from botengine.ingestion import knowledge_stats
from botengine.loader import load_bot_store
from botengine.router import ResponseRouter
from botengine.stores import ConversationStore
from botengine.types import ConversationMessage, Resolution, RouterResult
from botengine.vectorstore import VectorStore

from .schemas import KnowledgeStats, ResolveRequest, ResolveResponse

logger = logging.getLogger(__name__)


def record_exchange(
    store: Optional[ConversationStore], bot_id: str, session_id: Optional[str], text: str, result: RouterResult
) -> None:
    if store is None or not session_id:
        return
    store.append(bot_id, session_id, ConversationMessage(sender="user", text=text.strip()))
    store.append(
        bot_id,
        session_id,
        ConversationMessage(
            sender="bot",
            text=result.response_text,
            resolution=Resolution(result.intent, result.confidence, result.source.value),
        ),
    )


def create_app(
    config_path: Optional[str] = None,
    data_path: Optional[str] = None,
    router: Optional[ResponseRouter] = None,
    vector_store: Optional[VectorStore] = None,
) -> FastAPI:
    # unrecognized-query writes run here, off the reply path
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="unrecognized")

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        executor.shutdown(wait=True)

    app = FastAPI(title="Bot Response Engine", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if router is None:
        settings = EngineSettings.from_file(config_path)
        configure_logging(settings.log_level)
        src_path = data_path or os.getenv("BOT_DATA_PATH", "data/bots.json")
        bot_store = load_bot_store(src_path)
        if vector_store is None:
            vector_store = build_vector_store(settings)
        router = build_router(settings, bot_store, vector_store=vector_store, executor=executor)
    conversations = router.conversation_store
    app.state.router = router
    app.state.executor = executor

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "generation": router.generation_available}

    @app.post("/bots/{bot_id}/resolve", response_model=ResolveResponse)
    def resolve(bot_id: str, req: ResolveRequest) -> Dict[str, Any]:
        try:
            result = router.resolve(bot_id, req.message, req.session_id)
        except BotNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except InvalidUtteranceError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        record_exchange(conversations, bot_id, req.session_id, req.message, result)
        return result.to_dict()

    @app.get("/bots/{bot_id}/knowledge/stats", response_model=Optional[KnowledgeStats])
    def stats(bot_id: str) -> Optional[Dict[str, Any]]:
        if router.bot_store.find_bot(bot_id) is None:
            raise HTTPException(status_code=404, detail=f"Bot not found: {bot_id}")
        return knowledge_stats(vector_store, bot_id)

    @app.websocket("/bots/{bot_id}/ws")
    async def ws_chat(websocket: WebSocket, bot_id: str) -> None:
        """Text frames in, one JSON result per frame out.

        A frame may be plain text or ``{"message": ..., "session_id": ...}``;
        the socket's own session id is used when none is given.
        """
        await websocket.accept()
        default_session = websocket.query_params.get("session_id") or f"ws-{id(websocket)}"
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    payload = json.loads(raw)
                except ValueError:
                    payload = raw
                if not isinstance(payload, dict):
                    payload = {"message": payload if isinstance(payload, str) else raw}
                message = payload.get("message")
                session_id = payload.get("session_id") or default_session
                try:
                    result = await run_in_threadpool(router.resolve, bot_id, message, session_id)
                except (BotNotFoundError, InvalidUtteranceError) as exc:
                    await websocket.send_text(json.dumps({"error": str(exc)}, ensure_ascii=False))
                    continue
                record_exchange(conversations, bot_id, session_id, message, result)
                await websocket.send_text(json.dumps(result.to_dict(), ensure_ascii=False))
        except WebSocketDisconnect:
            return

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(os.getenv("ENGINE_CONFIG")), host="0.0.0.0", port=int(os.getenv("PORT", "9000")))
