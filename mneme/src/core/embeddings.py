"""
Mneme - Embedding Client
=========================
Turns free text into a dense vector via Google Gemini embeddings
(``GoogleGenerativeAIEmbeddings`` from ``langchain-google-genai``).

Contract
--------
``await EmbeddingClient().embed(text)`` returns a list of floats on
success and ``[]`` on *any* failure — missing API key, network error,
malformed response.  It never raises and never retries; callers treat
an empty vector as "skip this step".

The underlying LangChain embedder is a **module-level singleton**,
created lazily on first use and reused for every request.  It holds
only immutable configuration (model name + key), so concurrent
requests stay independent.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from mneme.config.settings import settings
from mneme.src.utils.logger import get_logger
from mneme.src.utils.text_utils import build_embedding_text, normalize_for_embedding

logger = get_logger(__name__)


@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible async embedding model."""

    async def aembed_query(self, text: str) -> list[float]: ...


# ══════════════════════════════════════════════════════════════════════
#  GEMINI EMBEDDER SINGLETON
# ══════════════════════════════════════════════════════════════════════

_embedder: Embedder | None = None


def _get_default_embedder() -> Embedder | None:
    """Return (or create) the module-level Gemini embedder, or None without a key."""
    global _embedder
    if _embedder is None:
        if not settings.has_google_key:
            logger.warning("[EMBED] GOOGLE_API_KEY is not set — embeddings are disabled.")
            return None

        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        _embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
        logger.info("[EMBED] Embedder initialised: %s (singleton).", settings.EMBEDDING_MODEL)
    return _embedder


class EmbeddingClient:
    """
    Single-attempt text → vector client.

    Parameters
    ----------
    embedder
        Optional injected ``Embedder``.  Defaults to the Gemini singleton.
    """

    __slots__ = ("_embedder",)

    def __init__(self, embedder: Embedder | None = None) -> None:
        self._embedder = embedder


    def _resolve_embedder(self) -> Embedder | None:
        return self._embedder if self._embedder is not None else _get_default_embedder()


    async def embed(self, text: str) -> list[float]:
        """Embed *text* with newlines flattened to spaces.  Returns ``[]`` on failure."""
        try:
            embedder = self._resolve_embedder()
            if embedder is None:
                return []

            values = await embedder.aembed_query(normalize_for_embedding(text))
            vector = [float(v) for v in values or []]
        except Exception:
            logger.exception("[EMBED] Embedding call failed — returning empty vector.")
            return []

        if not vector:
            logger.warning("[EMBED] Embedding service returned an empty vector.")
        else:
            logger.debug("[EMBED] %d-dim vector for %d chars.", len(vector), len(text))
        return vector


    async def embed_memory(self, title: str | None, content: str | None, ai_description: str | None) -> list[float]:
        """Embed a memory's ``title + content + ai_description`` composite."""
        return await self.embed(build_embedding_text(title, content, ai_description))
