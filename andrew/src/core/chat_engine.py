"""
Andrew - Chat Engine
=====================
Turns a chat transcript into one assistant answer.

Architecture
------------
``detect_intent`` / ``needs_knowledge_base``
    Cheap pattern rules deciding whether the knowledge base is worth
    consulting (greetings and bare acknowledgements skip it).

``ChatManager``
    Pipeline orchestrator.  Flow:
        1. Last message → user query
        2. Intent detection → greeting / question / general
        3. Knowledge-base context (lazy engine init, last 6 turns folded
           into the retrieval query) or a minimal system prompt
        4. Trim the transcript to ``MAX_HISTORY_MESSAGES``
        5. Resolve the API key (user key → server key)
        6. Primary model with ``PRIMARY_TIMEOUT_SECONDS``
        7. On timeout / error / empty answer → fallback model with
           ``FALLBACK_TIMEOUT_SECONDS``
        8. Return answer + debug payload

Failure policy
--------------
- Retrieval or knowledge-base errors never fail the request: the
  pipeline logs them and answers without context.
- Rate-limit / quota errors raise ``RateLimitError`` at once (the
  fallback shares the same provider quota).
- Both tiers failing raises ``LLMUnavailableError``.

Usage:
    from andrew.src.core.chat_engine import ChatManager
    chat = ChatManager()
    result = await chat.generate_response(messages, user_api_key=None)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from typing import Any, Literal

from andrew.config.prompt_templates import GREETING_PATTERNS, QUESTION_PATTERNS, RAG_PROMPT_TEMPLATE, RATE_LIMIT_PATTERN, SIMPLE_MESSAGE_PATTERNS, SIMPLE_PROMPT_TEMPLATE
from andrew.config.settings import settings
from andrew.src.core.exceptions import KnowledgeBaseError, LLMUnavailableError, MissingAPIKeyError, RateLimitError, RetrievalError
from andrew.src.core.models import ChatMessage, ChatResult
from andrew.src.core.retrieval import RetrievalEngine, get_retrieval_engine
from andrew.src.database.knowledge_store import KnowledgeBaseStore
from andrew.src.utils.logger import get_logger

logger = get_logger(__name__)

Intent = Literal["greeting", "question", "general"]

# (model, api_key, temperature, max_output_tokens) -> LangChain chat model
LLMFactory = Callable[[str, str, float, int], Any]

_CHARS_PER_TOKEN = 4


# ══════════════════════════════════════════════════════════════════════
#  INTENT RULES
# ══════════════════════════════════════════════════════════════════════


def detect_intent(message: str) -> Intent:
    """Classify a user message as ``greeting``, ``question`` or ``general``."""
    lowered = message.lower().strip()
    if any(pattern.search(lowered) for pattern in GREETING_PATTERNS):
        return "greeting"
    if any(pattern.search(lowered) for pattern in QUESTION_PATTERNS):
        return "question"
    return "general"


def needs_knowledge_base(intent: Intent, message: str) -> bool:
    if intent == "greeting":
        return False
    stripped = message.strip()
    return not any(pattern.search(stripped) for pattern in SIMPLE_MESSAGE_PATTERNS)


def format_recent_history(messages: Sequence[ChatMessage], turns: int) -> str:
    """
    Fold the *turns* messages preceding the last one into ``role: content`` lines.

    The last message is the current query and is excluded.
    """
    if len(messages) <= 1 or turns <= 0:
        return ""
    previous = messages[:-1][-turns:]
    return "\n".join(f"{m.role}: {m.content}" for m in previous)


def _default_llm_factory(model: str, api_key: str, temperature: float, max_tokens: int) -> Any:
    """Create a Gemini chat model via LangChain."""
    from langchain_google_genai import ChatGoogleGenerativeAI

    # Retries would eat into the tier timeout; the fallback tier is the retry
    return ChatGoogleGenerativeAI(model=model, google_api_key=api_key, temperature=temperature, max_output_tokens=max_tokens, max_retries=0)


def _is_rate_limit(exc: BaseException) -> bool:
    for attr in ("code", "status_code"):
        if getattr(exc, attr, None) == 429:
            return True
    return RATE_LIMIT_PATTERN.search(str(exc)) is not None


def _content_text(content: Any) -> str:
    """Flatten a LangChain message ``content`` (str or list of parts) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [part if isinstance(part, str) else str(part.get("text", "")) for part in content if isinstance(part, (str, dict))]
        return "".join(parts)
    return str(content)


# ══════════════════════════════════════════════════════════════════════
#  CHAT MANAGER
# ══════════════════════════════════════════════════════════════════════


class ChatManager:
    """
    Orchestrates intent → retrieval → two-tier LLM call.

    Parameters
    ----------
    engine
        Retrieval engine.  Defaults to the process-wide instance.
    knowledge_store
        Source of the system prompt and chunks used for lazy init.
    llm_factory
        Builds a chat model exposing ``ainvoke``.  Defaults to Gemini.
    """

    __slots__ = ("_engine", "_knowledge_store", "_llm_factory")

    def __init__(self, engine: RetrievalEngine | None = None, knowledge_store: KnowledgeBaseStore | None = None, llm_factory: LLMFactory | None = None) -> None:
        self._engine = engine or get_retrieval_engine()
        self._knowledge_store = knowledge_store or KnowledgeBaseStore()
        self._llm_factory = llm_factory or _default_llm_factory


    async def generate_response(self, messages: Sequence[ChatMessage], user_api_key: str | None = None, rag_enabled: bool = True) -> ChatResult:
        """
        Answer the last message of *messages*.

        Raises
        ------
        MissingAPIKeyError
            No user key and no ``GOOGLE_API_KEY``.
        RateLimitError
            The provider reported rate or quota exhaustion.
        LLMUnavailableError
            Both model tiers failed.
        """
        t_start = time.perf_counter()
        user_query = messages[-1].content if messages else ""

        # ── 1. Intent + knowledge-base decision ──────────────────────
        intent = detect_intent(user_query)
        needs_rag = rag_enabled and needs_knowledge_base(intent, user_query)

        # ── 2. System message ─────────────────────────────────────────
        context, chunk_ids = "", []
        if needs_rag:
            retrieved = self._retrieve_context(user_query, messages)
            if retrieved is None:
                needs_rag = False
            else:
                context, chunk_ids = retrieved
        system_prompt = self._build_system_prompt(intent, needs_rag, context)

        # ── 3. Trim transcript ────────────────────────────────────────
        limited = list(messages[-settings.MAX_HISTORY_MESSAGES:])
        lc_messages = self._to_langchain(system_prompt, limited)
        estimated_tokens = self._estimate_tokens(system_prompt, limited)

        # ── 4. API key ────────────────────────────────────────────────
        api_key = self._resolve_api_key(user_api_key)
        logger.info("[CHAT] intent=%s rag=%s messages=%d context=%d chars ~%d tokens user_key=%s", intent, needs_rag, len(limited), len(context), estimated_tokens, bool(user_api_key))

        # ── 5. Primary → fallback ─────────────────────────────────────
        answer, model_name, usage, used_fallback = await self._invoke_with_fallback(lc_messages, api_key, intent)

        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[CHAT] Answer from %s (%d chars) in %.1fms%s.", model_name, len(answer), total_ms, " via fallback" if used_fallback else "")

        debug = {"usage": usage, "contextLength": len(context), "usingUserApiKey": bool(user_api_key), "estimatedInputTokens": estimated_tokens, "ragEnabled": needs_rag, "intent": intent, "chunkIds": chunk_ids, "fallbackUsed": used_fallback}
        return ChatResult(response=answer, model=model_name, debug=debug)

    # ══════════════════════════════════════════════════════════════════
    #  CONTEXT
    # ══════════════════════════════════════════════════════════════════

    def _ensure_engine_ready(self) -> None:
        """Initialise the shared engine from the knowledge base on first need."""
        if self._engine.is_ready():
            return
        config = self._knowledge_store.load()
        self._engine.initialize(config.knowledge_base, config.system_prompt)


    def _retrieve_context(self, user_query: str, messages: Sequence[ChatMessage]) -> tuple[str, list[str]] | None:
        """Context block and chunk ids, or None when retrieval is unavailable."""
        t_search = time.perf_counter()
        try:
            self._ensure_engine_ready()
            history = format_recent_history(messages, settings.CONTEXT_HISTORY_TURNS)
            results = self._engine.retrieve(user_query, history, settings.MAX_CONTEXT_CHUNKS)
        except (RetrievalError, KnowledgeBaseError) as exc:
            logger.warning("[CHAT] Retrieval failed, answering without knowledge-base context: %s", exc)
            return None

        search_ms = (time.perf_counter() - t_search) * 1000
        chunk_ids = [result.chunk.id for result in results]
        logger.info("[CHAT] Retrieved %d chunk(s) %s in %.1fms.", len(results), chunk_ids, search_ms)
        return RetrievalEngine.format_context(results), chunk_ids


    def _build_system_prompt(self, intent: Intent, needs_rag: bool, context: str) -> str:
        if needs_rag:
            return RAG_PROMPT_TEMPLATE.format(system_prompt=self._engine.get_system_prompt(), context=context)
        return SIMPLE_PROMPT_TEMPLATE.format(intent=intent)


    @staticmethod
    def _to_langchain(system_prompt: str, messages: Sequence[ChatMessage]) -> list[Any]:
        from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

        converted: list[Any] = [SystemMessage(content=system_prompt)]
        for message in messages:
            if message.role == "assistant":
                converted.append(AIMessage(content=message.content))
            elif message.role == "system":
                converted.append(SystemMessage(content=message.content))
            else:
                converted.append(HumanMessage(content=message.content))
        return converted


    @staticmethod
    def _estimate_tokens(system_prompt: str, messages: Sequence[ChatMessage]) -> int:
        total_chars = len(system_prompt) + sum(len(m.content) for m in messages)
        return -(-total_chars // _CHARS_PER_TOKEN)


    @staticmethod
    def _resolve_api_key(user_api_key: str | None) -> str:
        if user_api_key:
            return user_api_key
        if settings.GOOGLE_API_KEY is not None and settings.GOOGLE_API_KEY.get_secret_value():
            return settings.GOOGLE_API_KEY.get_secret_value()
        logger.error("[CHAT] No API key provided by the user or the server configuration.")
        raise MissingAPIKeyError("API key required")

    # ══════════════════════════════════════════════════════════════════
    #  LLM CALLS
    # ══════════════════════════════════════════════════════════════════

    async def _invoke_with_fallback(self, lc_messages: list[Any], api_key: str, intent: Intent) -> tuple[str, str, dict[str, Any] | None, bool]:
        temperature = settings.GREETING_TEMPERATURE if intent == "greeting" else settings.LLM_TEMPERATURE
        max_tokens = settings.GREETING_MAX_TOKENS if intent == "greeting" else settings.MAX_OUTPUT_TOKENS

        try:
            answer, model_name, usage = await self._invoke(settings.PRIMARY_LLM_MODEL, api_key, temperature, max_tokens, lc_messages, settings.PRIMARY_TIMEOUT_SECONDS)
            return answer, model_name, usage, False
        except RateLimitError:
            raise
        except asyncio.TimeoutError:
            primary_error = f"timed out after {settings.PRIMARY_TIMEOUT_SECONDS:.0f}s"
            logger.error("[CHAT] Primary model %s %s.", settings.PRIMARY_LLM_MODEL, primary_error)
        except Exception as exc:
            primary_error = str(exc) or type(exc).__name__
            logger.exception("[CHAT] Primary model %s failed.", settings.PRIMARY_LLM_MODEL)

        logger.warning("[CHAT] Falling back to %s.", settings.FALLBACK_LLM_MODEL)
        try:
            answer, model_name, usage = await self._invoke(settings.FALLBACK_LLM_MODEL, api_key, temperature, max_tokens, lc_messages, settings.FALLBACK_TIMEOUT_SECONDS)
            return answer, model_name, usage, True
        except RateLimitError:
            raise
        except asyncio.TimeoutError as exc:
            fallback_error = f"timed out after {settings.FALLBACK_TIMEOUT_SECONDS:.0f}s"
            logger.error("[CHAT] Fallback model %s %s.", settings.FALLBACK_LLM_MODEL, fallback_error)
            raise LLMUnavailableError(primary_error, fallback_error) from exc
        except Exception as exc:
            logger.exception("[CHAT] Fallback model %s failed.", settings.FALLBACK_LLM_MODEL)
            raise LLMUnavailableError(primary_error, str(exc) or type(exc).__name__) from exc


    async def _invoke(self, model: str, api_key: str, temperature: float, max_tokens: int, lc_messages: list[Any], timeout: float) -> tuple[str, str, dict[str, Any] | None]:
        """One model call bounded by *timeout*; empty answers count as failures."""
        llm = self._llm_factory(model, api_key, temperature, max_tokens)
        t_llm = time.perf_counter()
        try:
            response = await asyncio.wait_for(llm.ainvoke(lc_messages), timeout=timeout)
        except asyncio.TimeoutError:
            raise
        except Exception as exc:
            if _is_rate_limit(exc):
                logger.warning("[CHAT] Rate limit reported by %s: %s", model, exc)
                raise RateLimitError(str(exc)) from exc
            raise

        answer = _content_text(getattr(response, "content", response))
        if not answer.strip():
            raise ValueError(f"{model} returned an empty response")

        metadata = getattr(response, "response_metadata", None) or {}
        usage = getattr(response, "usage_metadata", None)
        logger.debug("[CHAT] %s answered in %.1fms.", model, (time.perf_counter() - t_llm) * 1000)
        return answer, str(metadata.get("model_name") or model), dict(usage) if usage else None
