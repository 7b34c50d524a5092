"""
Andrew - Centralized Configuration
===================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr``.  It is optional because
  the chat widget may supply its own key per request; when neither is
  present the chat pipeline refuses the call with ``MissingAPIKeyError``.
  The raw value is never exposed in repr, logs, or tracebacks.
- ``MONGO_URI`` is also ``SecretStr``.  Connection strings contain
  credentials and must never leak into logs.  Leaving it unset disables
  server-side session history.

Paths
-----
All filesystem paths are ``Path.resolve()``-d at class level so they
work identically on Windows, WSL, and Linux.

Retrieval tunables
------------------
``CANDIDATE_POOL_SIZE`` and ``MAX_RELATED_CHUNKS`` bound the per-query
scoring pass and the relationship expansion of the retrieval engine.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).

    Attributes
    ----------
    ENV : "dev" | "prod"
        Deployment mode.  Drives the default log level.
    LOG_LEVEL : str | None
        Explicit log level; overrides the level derived from ``ENV``.
    GOOGLE_API_KEY : SecretStr | None
        Server-side key for the Gemini chat models.  A key supplied by the
        user in the request takes precedence.
    PRIMARY_LLM_MODEL / FALLBACK_LLM_MODEL : str
        Two-tier model chain.  The fallback is only called when the
        primary times out, errors, or answers with empty content.
    PRIMARY_TIMEOUT_SECONDS / FALLBACK_TIMEOUT_SECONDS : float
        Per-tier wall-clock limit for one LLM call.
    MAX_HISTORY_MESSAGES : int
        Number of trailing chat messages forwarded to the LLM.
    CONTEXT_HISTORY_TURNS : int
        Number of previous turns folded into the retrieval query.
    MAX_CONTEXT_CHUNKS : int
        Primary chunks requested from the retrieval engine.
    CANDIDATE_POOL_SIZE : int
        Corpus prefix scored per query.
    MAX_RELATED_CHUNKS : int
        Secondary chunks appended through relationship expansion.
    SESSION_MAX_MESSAGES : int
        Stored history cap per session.
    SESSION_EXPIRY_HOURS : int
        Inactivity window after which a stored session is cleared.
    CHUNK_SIZE / CHUNK_OVERLAP : int
        Target chunk length used when building chunks from raw documents.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    DATA_RAW_DIR: Path = BASE_DIR / "data" / "raw"
    KNOWLEDGE_BASE_PATH: Path = BASE_DIR / "data" / "knowledge_base.json"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None

    # ── API Keys (optional, the request may carry its own) ────────────
    GOOGLE_API_KEY: SecretStr | None = None

    # ── Model Configuration ────────────────────────────────────────────
    PRIMARY_LLM_MODEL: str = "gemini-2.0-flash"
    FALLBACK_LLM_MODEL: str = "gemini-1.5-flash"
    PRIMARY_TIMEOUT_SECONDS: float = 20.0
    FALLBACK_TIMEOUT_SECONDS: float = 15.0
    LLM_TEMPERATURE: float = 0.7
    GREETING_TEMPERATURE: float = 0.3
    MAX_OUTPUT_TOKENS: int = 1200
    GREETING_MAX_TOKENS: int = 50

    # ── Conversation Window ────────────────────────────────────────────
    MAX_HISTORY_MESSAGES: int = 10
    CONTEXT_HISTORY_TURNS: int = 6

    # ── Retrieval ──────────────────────────────────────────────────────
    MAX_CONTEXT_CHUNKS: int = 3
    CANDIDATE_POOL_SIZE: int = 50
    MAX_RELATED_CHUNKS: int = 2

    # ── MongoDB (optional session store) ───────────────────────────────
    MONGO_URI: SecretStr | None = None
    MONGO_DB_NAME: str = "andrew"
    SESSION_MAX_MESSAGES: int = 20
    SESSION_EXPIRY_HOURS: int = 24

    # ── Raw-document Chunking ──────────────────────────────────────────
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("MAX_HISTORY_MESSAGES", "CONTEXT_HISTORY_TURNS", "MAX_CONTEXT_CHUNKS", "CANDIDATE_POOL_SIZE", "SESSION_MAX_MESSAGES", "SESSION_EXPIRY_HOURS", "CHUNK_SIZE")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be ≥ 1, got {v}")
        return v


    @field_validator("MAX_RELATED_CHUNKS", "CHUNK_OVERLAP")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"value must be ≥ 0, got {v}")
        return v


    @field_validator("PRIMARY_TIMEOUT_SECONDS", "FALLBACK_TIMEOUT_SECONDS")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout must be > 0 seconds, got {v}")
        return v


    @model_validator(mode="after")
    def _overlap_below_chunk_size(self) -> "Settings":
        if self.CHUNK_OVERLAP >= self.CHUNK_SIZE:
            raise ValueError(f"CHUNK_OVERLAP ({self.CHUNK_OVERLAP}) must be smaller than CHUNK_SIZE ({self.CHUNK_SIZE})")
        return self

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from andrew.config.settings import settings
settings = Settings()
