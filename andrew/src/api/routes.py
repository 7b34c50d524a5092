"""
Andrew - API Routes
====================
Thin controllers: validate the request, delegate to the chat pipeline /
retrieval engine, translate domain errors into HTTP status codes.

Endpoints
---------
POST   /api/chat                 → answer the last message
DELETE /api/chat/{session_id}    → clear a stored session
GET    /api/config               → knowledge-base document
GET    /api/retrieval/chunks     → chunk ids in corpus order (diagnostics)
GET    /health                   → liveness

Collaborators are provided through ``Depends`` so tests can override them.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from andrew.config.prompt_templates import LLM_FAILURE_DETAILS, MISSING_API_KEY_DETAILS, RATE_LIMIT_DETAILS
from andrew.src.core.chat_engine import ChatManager
from andrew.src.core.exceptions import KnowledgeBaseError, LLMUnavailableError, MissingAPIKeyError, RateLimitError
from andrew.src.core.models import ChatMessage
from andrew.src.core.retrieval import RetrievalEngine, get_retrieval_engine
from andrew.src.database.knowledge_store import KnowledgeBaseStore
from andrew.src.database.session_store import MongoSessionManager, is_session_store_enabled
from andrew.src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


# ── Request / response schemas ─────────────────────────────────────────

class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(min_length=1)
    user_api_key: str | None = Field(default=None, alias="userApiKey")
    rag_enabled: bool = Field(default=True, alias="ragEnabled")
    session_id: str | None = Field(default=None, alias="sessionId")


class ChatResponse(BaseModel):
    response: str
    model: str
    debug: dict[str, Any] = Field(default_factory=dict)


# ── Dependency providers ───────────────────────────────────────────────

@lru_cache(maxsize=1)
def get_knowledge_store() -> KnowledgeBaseStore:
    return KnowledgeBaseStore()


def get_engine() -> RetrievalEngine:
    return get_retrieval_engine()


def get_chat_manager(engine: RetrievalEngine = Depends(get_engine), knowledge_store: KnowledgeBaseStore = Depends(get_knowledge_store)) -> ChatManager:
    return ChatManager(engine=engine, knowledge_store=knowledge_store)


def get_session_manager() -> MongoSessionManager | None:
    if not is_session_store_enabled():
        return None
    return MongoSessionManager()


def _error(status_code: int, error: str, details: str, rate_limited: bool = False) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "details": details, "rateLimited": rate_limited})


# ── Routes ─────────────────────────────────────────────────────────────

@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/api/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, chat_manager: ChatManager = Depends(get_chat_manager), sessions: MongoSessionManager | None = Depends(get_session_manager)) -> Any:
    messages = list(request.messages)
    if request.session_id and sessions is not None:
        stored = [ChatMessage.model_validate(m) for m in await sessions.get_history(request.session_id)]
        messages = stored + messages

    try:
        result = await chat_manager.generate_response(messages, user_api_key=request.user_api_key, rag_enabled=request.rag_enabled)
    except MissingAPIKeyError:
        return _error(status.HTTP_400_BAD_REQUEST, "API key required", MISSING_API_KEY_DETAILS, rate_limited=True)
    except RateLimitError:
        return _error(status.HTTP_429_TOO_MANY_REQUESTS, "Rate limit exceeded", RATE_LIMIT_DETAILS, rate_limited=True)
    except LLMUnavailableError as exc:
        logger.error("[API] Chat failed: %s", exc)
        return _error(status.HTTP_502_BAD_GATEWAY, "Model unavailable", LLM_FAILURE_DETAILS)

    if request.session_id and sessions is not None:
        await sessions.append_exchange(request.session_id, messages[-1].content, result.response)

    return ChatResponse(response=result.response, model=result.model, debug=result.debug)


@router.delete("/api/chat/{session_id}")
async def clear_chat(session_id: str, sessions: MongoSessionManager | None = Depends(get_session_manager)) -> dict[str, bool]:
    if sessions is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session storage is not configured.")
    return {"cleared": await sessions.clear_session(session_id)}


@router.get("/api/config")
async def get_config(knowledge_store: KnowledgeBaseStore = Depends(get_knowledge_store)) -> dict[str, Any]:
    try:
        config = knowledge_store.load()
    except KnowledgeBaseError as exc:
        logger.error("[API] %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Knowledge base unavailable.") from exc
    return config.model_dump(by_alias=True)


@router.get("/api/retrieval/chunks")
async def chunk_ids(engine: RetrievalEngine = Depends(get_engine)) -> dict[str, Any]:
    return {"ready": engine.is_ready(), "chunkIds": engine.get_chunk_ids()}
