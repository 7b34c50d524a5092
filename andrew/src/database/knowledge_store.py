"""
Andrew - KnowledgeBaseStore
============================
Read-only source of the chat configuration document::

    {"systemPrompt": str, "knowledgeBase": [KnowledgeChunk, ...]}

Design decisions:
  • **Load once**: the document is parsed and validated on first use
    and cached for the lifetime of the process.  The corpus is static;
    there is no reload path.
  • **Thread-safe**: concurrent first requests share one load via
    ``_lock``.
  • **Validated at the boundary**: ``pydantic`` rejects malformed
    chunks and duplicate ids before anything reaches the retrieval
    engine.

Usage:
    from andrew.src.database.knowledge_store import KnowledgeBaseStore
    store = KnowledgeBaseStore()
    config = store.load()
    engine.initialize(config.knowledge_base, config.system_prompt)
"""

from __future__ import annotations

import json
import threading
from pathlib import Path

from pydantic import ValidationError

from andrew.config.settings import settings
from andrew.src.core.exceptions import KnowledgeBaseError
from andrew.src.core.models import KnowledgeBaseConfig
from andrew.src.utils.logger import get_logger

logger = get_logger(__name__)


class KnowledgeBaseStore:
    """
    Lazily loaded, cached knowledge-base document.

    Parameters
    ----------
    path
        Override the JSON document location.  Defaults to
        ``settings.KNOWLEDGE_BASE_PATH``.
    """

    __slots__ = ("_path", "_config", "_lock")

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path or settings.KNOWLEDGE_BASE_PATH)
        self._config: KnowledgeBaseConfig | None = None
        self._lock = threading.Lock()


    @property
    def path(self) -> Path:
        return self._path


    def load(self) -> KnowledgeBaseConfig:
        """
        Return the validated configuration, reading it on first call.

        Raises
        ------
        KnowledgeBaseError
            If the file is missing, is not valid JSON, or does not match
            the expected schema.
        """
        if self._config is None:
            with self._lock:
                if self._config is None:
                    self._config = self._read()
        return self._config


    def _read(self) -> KnowledgeBaseConfig:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise KnowledgeBaseError(f"Knowledge base not found: {self._path}") from exc
        except OSError as exc:
            logger.error("[KB] Filesystem error reading %s: %s", self._path, exc)
            raise KnowledgeBaseError(f"Cannot read knowledge base: {self._path}") from exc

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise KnowledgeBaseError(f"Knowledge base is not valid JSON ({self._path}): {exc}") from exc

        try:
            config = KnowledgeBaseConfig.model_validate(payload)
        except ValidationError as exc:
            raise KnowledgeBaseError(f"Knowledge base failed validation ({self._path}): {exc.error_count()} error(s)\n{exc}") from exc

        logger.info("[KB] Loaded %d chunk(s) from %s.", len(config.knowledge_base), self._path)
        return config


    def __repr__(self) -> str:
        state = "loaded" if self._config is not None else "pending"
        return f"KnowledgeBaseStore(path='{self._path}', {state})"
