"""
Mneme - Centralized Configuration
==================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Credentials
-----------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr`` and is **optional**.
  A missing key never prevents the app from starting: the embedding
  client degrades to an empty vector and the answerer degrades to a
  fixed apology string.  The raw value is never exposed in repr,
  logs, or tracebacks.

Paths
-----
All filesystem paths are ``Path.resolve()``-d at class level so they
work identically on Windows, WSL, and Linux.

Retrieval Tuning
----------------
``MATCH_THRESHOLD`` / ``MATCH_COUNT`` are the loose recall defaults of
the vector search (0.4 similarity, 15 candidates).  Precision is left
to the LLM relevance filter downstream.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr | None
        API key for Google AI Studio (Gemini).  Optional.
        Access the raw value with ``settings.GOOGLE_API_KEY.get_secret_value()``.
    ENV : Literal["dev", "prod"]
        Environment mode controlling logging verbosity.
    EMBEDDING_MODEL : str
        Model identifier passed to ``GoogleGenerativeAIEmbeddings``.
    EMBEDDING_DIMENSION : int
        Length of every stored vector.  Must match ``EMBEDDING_MODEL``.
    LLM_MODEL : str
        Model identifier for the answer-generation LLM.
    LLM_TEMPERATURE : float
        Sampling temperature for the answer-generation LLM.
    LANCEDB_TABLE_NAME : str
        Table name inside the LanceDB on-disk database.
    MATCH_THRESHOLD : float
        Minimum cosine similarity for a search candidate.
    MATCH_COUNT : int
        Maximum number of search candidates.
    FALLBACK_DISPLAY_COUNT : int
        Candidates shown when the model selects none.
    RELEVANCE_BAND : int
        Relevance percentage the answer prompt asks the model to prioritise.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    LANCEDB_PATH: Path = BASE_DIR / "data" / "lancedb"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── API Keys (optional) ─────────────────────────────────────────────
    GOOGLE_API_KEY: SecretStr | None = None

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "gemini-embedding-001"
    EMBEDDING_DIMENSION: int = 3072
    LLM_MODEL: str = "gemini-2.5-flash"
    LLM_TEMPERATURE: float = 0.3

    # ── LanceDB ────────────────────────────────────────────────────────
    LANCEDB_TABLE_NAME: str = "memories"

    # ── Retrieval ──────────────────────────────────────────────────────
    MATCH_THRESHOLD: float = 0.4
    MATCH_COUNT: int = 15
    FALLBACK_DISPLAY_COUNT: int = 5
    RELEVANCE_BAND: int = 60

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("MATCH_THRESHOLD")
    @classmethod
    def _threshold_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"MATCH_THRESHOLD must be 0.0–1.0, got {v}")
        return v


    @field_validator("MATCH_COUNT")
    @classmethod
    def _match_count_range(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError(f"MATCH_COUNT must be 1–100, got {v}")
        return v


    @field_validator("LLM_TEMPERATURE")
    @classmethod
    def _temperature_range(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"LLM_TEMPERATURE must be 0.0–2.0, got {v}")
        return v


    @field_validator("EMBEDDING_DIMENSION", "FALLBACK_DISPLAY_COUNT")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be ≥ 1, got {v}")
        return v

    @property
    def has_google_key(self) -> bool:
        """True when a non-blank Gemini key is configured."""
        return self.GOOGLE_API_KEY is not None and bool(self.GOOGLE_API_KEY.get_secret_value().strip())

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from mneme.config.settings import settings
settings = Settings()
