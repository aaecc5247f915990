"""
BudgetBot - Centralized Configuration
======================================
A single ``pydantic-settings`` model fed by the process environment and
``budgetbot/.env``.

Secrets
-------
``GOOGLE_API_KEY`` and ``MONGO_URI`` are ``SecretStr`` fields without
defaults.  Importing this module with either one unset fails with a
``ValidationError``; once loaded, neither value shows up in repr output
or log lines.

Retrieval thresholds
--------------------
The relevance cutoff, the minimum accepted rewrite length and the
"vague query" length cutoff are deployment knobs.  None of the defaults
below is load-bearing; tune them per embedding model.
``RELEVANCE_THRESHOLD=None`` disables the cutoff and relies on
``SEARCH_TOP_K`` alone.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    BudgetBot settings; field names double as environment variable names.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for the Gemini engine binding.  **Required.**
    MONGO_URI : SecretStr
        MongoDB connection string for chat memory and flags.  **Required.**
    PROMPT_FORMAT : Literal["gemma", "chatml"]
        Role-delimiter convention of the target generation engine.
    SEARCH_TOP_K : int
        Number of units handed to the prompt.
    RELEVANCE_THRESHOLD : float | None
        Minimum cosine score a unit needs to be retrieved.
    HISTORY_LIMIT : int
        Conversation turns included in the prompt.
    FLUSH_TOKEN_COUNT : int
        Streamed tokens batched per ``on_partial`` call.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    DATA_RAW_DIR: Path = BASE_DIR / "data" / "raw"
    LANCEDB_PATH: Path = BASE_DIR / "data" / "lancedb"
    LEDGER_PATH: Path = BASE_DIR / "data" / "raw" / "ledger.json"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── Logging ────────────────────────────────────────────────────────
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] | None = None
    LOG_FILE: Path | None = None

    # ── API Keys (REQUIRED — no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── MongoDB (REQUIRED — no default) ────────────────────────────────
    MONGO_URI: SecretStr
    MONGO_DB_NAME: str = "budgetbot"
    MONGO_TURNS_COLLECTION: str = "chat_memory"
    MONGO_FLAGS_COLLECTION: str = "app_state"

    # ── LanceDB ────────────────────────────────────────────────────────
    LANCEDB_TABLE_NAME: str = "documents"

    # ── Ingestion Parameters ───────────────────────────────────────────
    CHUNK_SIZE: int = 500
    INITIAL_DATA_FLAG: str = "initial_data_ingested_v1"

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "gemini-embedding-001"
    LLM_MODEL: str = "gemini-2.0-flash"
    PROMPT_FORMAT: Literal["gemma", "chatml"] = "gemma"

    # ── Generation ─────────────────────────────────────────────────────
    MAX_TOKENS: int = 256
    TEMPERATURE: float = 0.3
    TOP_P: float = 0.95
    TOP_K: int = 64
    FLUSH_TOKEN_COUNT: int = 1

    # ── Retrieval ──────────────────────────────────────────────────────
    SEARCH_TOP_K: int = 2
    RELEVANCE_THRESHOLD: float | None = 0.45
    CONTEXT_CHAR_LIMIT: int = 1000
    HISTORY_LIMIT: int = 2

    # ── Query Rewriting ────────────────────────────────────────────────
    VAGUE_WORDS: list[str] = ["that", "this", "it", "those", "these", "him", "her", "them", "that one", "those ones"]
    VAGUE_QUERY_MIN_LENGTH: int = 25
    MIN_REWRITE_LENGTH: int = 10
    REWRITE_HISTORY_TURNS: int = 2
    REWRITE_MAX_TOKENS: int = 128

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("CHUNK_SIZE")
    @classmethod
    def _chunk_size_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"CHUNK_SIZE must be ≥ 1, got {v}")
        return v


    @field_validator("RELEVANCE_THRESHOLD")
    @classmethod
    def _threshold_range(cls, v: float | None) -> float | None:
        if v is not None and not -1.0 <= v <= 1.0:
            raise ValueError(f"RELEVANCE_THRESHOLD must be within [-1, 1], got {v}")
        return v


    @field_validator("FLUSH_TOKEN_COUNT", "MAX_TOKENS", "REWRITE_MAX_TOKENS")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be ≥ 1, got {v}")
        return v


    @field_validator("SEARCH_TOP_K", "HISTORY_LIMIT", "REWRITE_HISTORY_TURNS")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"value must be ≥ 0, got {v}")
        return v

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from budgetbot.config.settings import settings
settings = Settings()
