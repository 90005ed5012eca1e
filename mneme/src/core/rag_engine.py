"""
Mneme - RAG Engine
===================
Orchestrates retrieval-augmented answering over the user's saved
memories.

Architecture (OOP)
------------------
``EmbeddingClient``      → query text → vector (``[]`` on failure)
``MemoryVectorStore``    → vector → thresholded, ranked candidates
``build_context``        → candidates → numbered context block
``RelevanceAnswerer``    → context + query (+ history) → answer + relevant IDs
``MemorySearchEngine``   → ties the above together, one request at a time

Flow (``MemorySearchEngine.perform_search``)
--------------------------------------------
    1. Resolve candidates
       • pinned IDs present → follow-up: fetch those memories by ID,
         similarity 1.0 each, no embedding / vector search
       • otherwise → initial: embed query (empty vector → stop, empty
         result) and run the loose vector search (0.4 / 15)
    2. No candidates → fixed "no related memories" answer, skip the LLM
    3. Build context (scores only on initial turns) and ask the answerer
    4. Display the candidates the model picked (candidate order);
       if it picked none, display the top 5
    5. Return ``memories`` (display set), ``answer`` and ``memory_ids``
       (the full candidate set, pinned by the caller for the next turn)

Loose vector recall bounds the candidate set cheaply; the single LLM
pass then judges relevance precisely over at most ``MATCH_COUNT`` items.

Concurrency
-----------
``MemorySearchEngine`` keeps no request-scoped state, so one instance
serves concurrent requests.  Conversation history is passed in by the
caller on every request.

Usage:
    from mneme.src.core.rag_engine import perform_search
    response = await perform_search("sunset photos")
    follow_up = await perform_search("tell me more", history, response.memory_ids)
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence

from pydantic import ValidationError

from mneme.config.prompt_templates import NO_MEMORIES_RESPONSE, SEARCH_ERROR_RESPONSE
from mneme.config.settings import settings
from mneme.src.core.answerer import RelevanceAnswerer
from mneme.src.core.context_builder import build_context
from mneme.src.core.embeddings import EmbeddingClient
from mneme.src.core.models import ConversationTurn, SearchCandidate, SearchResponse
from mneme.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type aliases ───────────────────────────────────────────────────────
HistoryInput = Sequence[ConversationTurn | Mapping[str, str]]

_PINNED_SIMILARITY = 1.0


def normalize_history(history: HistoryInput | None) -> list[ConversationTurn]:
    """Validate caller-supplied turns, dropping malformed ones."""
    turns: list[ConversationTurn] = []
    for item in history or ():
        if isinstance(item, ConversationTurn):
            turns.append(item)
            continue
        try:
            turns.append(ConversationTurn.model_validate(item))
        except ValidationError:
            logger.warning("[RAG] Dropping malformed conversation turn: %r", item)
    return turns


def select_display_memories(candidates: Sequence[SearchCandidate], relevant_ids: Sequence[str], fallback_count: int) -> list[SearchCandidate]:
    """
    Pick the memories to show.

    Candidates whose ID is in *relevant_ids*, in candidate order; the
    first *fallback_count* candidates when *relevant_ids* is empty.
    """
    if not relevant_ids:
        return list(candidates[:fallback_count])
    wanted = set(relevant_ids)
    return [c for c in candidates if c.id in wanted]


class MemorySearchEngine:
    """
    Stateless retrieval orchestrator.

    Parameters
    ----------
    vector_store
        An initialised ``MemoryVectorStore`` (or any object exposing
        ``match_memories`` and ``fetch_by_ids``).
    embedding_client
        Optional custom ``EmbeddingClient``.
    answerer
        Optional custom ``RelevanceAnswerer``.
    """

    __slots__ = ("_store", "_embedding", "_answerer")

    def __init__(self, vector_store: object, embedding_client: EmbeddingClient | None = None, answerer: RelevanceAnswerer | None = None) -> None:
        self._store = vector_store
        self._embedding = embedding_client or EmbeddingClient()
        self._answerer = answerer or RelevanceAnswerer()


    async def perform_search(
        self,
        query: str,
        conversation_history: HistoryInput | None = None,
        pinned_memory_ids: Sequence[str] | None = None,
        match_threshold: float | None = None,
        match_count: int | None = None,
    ) -> SearchResponse:
        """
        Full retrieval pipeline.  Never raises.

        ``match_threshold`` and ``match_count`` override the configured
        retrieval tuning for this request only.

        Returns
        -------
        SearchResponse
            ``memories`` (display set), ``answer`` and ``memory_ids``
            (full candidate set).
        """
        try:
            threshold = settings.MATCH_THRESHOLD if match_threshold is None else match_threshold
            count = settings.MATCH_COUNT if match_count is None else match_count
            return await self._run(query or "", normalize_history(conversation_history), [i for i in pinned_memory_ids or () if i], threshold, count)
        except Exception:
            logger.exception("[RAG] Unexpected pipeline failure — returning empty result.")
            return SearchResponse.empty()


    async def _run(self, query: str, history: list[ConversationTurn], pinned_ids: list[str], match_threshold: float, match_count: int) -> SearchResponse:
        t_start = time.perf_counter()
        is_follow_up = bool(pinned_ids)

        # ── 1. Resolve candidates ─────────────────────────────────────
        t_retrieve = time.perf_counter()
        if is_follow_up:
            try:
                candidates = self._resolve_pinned(pinned_ids)
            except Exception:
                logger.exception("[RAG] Fetching pinned memories failed.")
                return SearchResponse.empty(SEARCH_ERROR_RESPONSE)
            logger.info("[RAG] Follow-up turn: %d/%d pinned memories resolved.", len(candidates), len(pinned_ids))
        else:
            if not query.strip():
                logger.info("[RAG] Blank query — nothing to search.")
                return SearchResponse.empty()

            query_vector = await self._embedding.embed(query)
            if not query_vector:
                logger.warning("[RAG] Query embedding unavailable — returning empty result.")
                return SearchResponse.empty()

            try:
                candidates = self._store.match_memories(query_vector, match_threshold=match_threshold, match_count=match_count)  # type: ignore[attr-defined]
            except Exception:
                logger.exception("[RAG] Vector search failed.")
                return SearchResponse.empty(SEARCH_ERROR_RESPONSE)
            logger.info("[RAG] Initial turn: %d candidate(s) for '%s'.", len(candidates), query[:50])
        retrieve_ms = (time.perf_counter() - t_retrieve) * 1000

        memory_ids = [c.id for c in candidates]

        # ── 2. Empty recall ───────────────────────────────────────────
        if not candidates:
            logger.info("[RAG] No candidates (%.1fms) — skipping answer generation.", retrieve_ms)
            return SearchResponse(memories=[], answer=NO_MEMORIES_RESPONSE, memory_ids=[])

        # ── 3. Build context + answer ─────────────────────────────────
        context = build_context(candidates, show_scores=not is_follow_up)
        logger.debug("[CONTEXT] %d block(s), %d chars.", len(candidates), len(context))

        t_llm = time.perf_counter()
        result = await self._answerer.answer_with_filtering(query, context, len(candidates), history, is_follow_up, known_ids=memory_ids)
        llm_ms = (time.perf_counter() - t_llm) * 1000

        # ── 4. Filter for display ─────────────────────────────────────
        displayed = select_display_memories(candidates, result.relevant_ids, settings.FALLBACK_DISPLAY_COUNT)
        if not result.relevant_ids:
            logger.info("[RAG] No relevance selection — showing top %d candidate(s).", len(displayed))

        # ── 5. Return ─────────────────────────────────────────────────
        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RAG] Pipeline total: %.1fms (retrieve=%.1f, llm=%.1f), displaying %d/%d.", total_ms, retrieve_ms, llm_ms, len(displayed), len(candidates))
        return SearchResponse(memories=displayed, answer=result.answer, memory_ids=memory_ids)


    def _resolve_pinned(self, pinned_ids: list[str]) -> list[SearchCandidate]:
        """Fetch pinned memories by ID, each with similarity 1.0, in pinned order."""
        records = self._store.fetch_by_ids(pinned_ids)  # type: ignore[attr-defined]
        return [SearchCandidate.from_record(record, _PINNED_SIMILARITY) for record in records]


# ══════════════════════════════════════════════════════════════════════
#  DEFAULT ENGINE SINGLETON
# ══════════════════════════════════════════════════════════════════════

_default_engine: MemorySearchEngine | None = None


def get_default_engine() -> MemorySearchEngine:
    """Return (or create) the process-wide engine over the configured LanceDB table."""
    global _default_engine
    if _default_engine is None:
        from mneme.src.database.vector_store import MemoryVectorStore

        _default_engine = MemorySearchEngine(MemoryVectorStore())
        logger.info("[RAG] Default search engine created (singleton).")
    return _default_engine


async def perform_search(
    query: str,
    conversation_history: HistoryInput | None = None,
    pinned_memory_ids: Sequence[str] | None = None,
    match_threshold: float | None = None,
    match_count: int | None = None,
) -> SearchResponse:
    """
    Caller-facing entry point.

    Never raises: a store that cannot be opened yields an empty result.
    """
    try:
        engine = get_default_engine()
    except Exception:
        logger.exception("[RAG] Could not initialise the search engine.")
        return SearchResponse.empty()
    return await engine.perform_search(query, conversation_history, pinned_memory_ids, match_threshold=match_threshold, match_count=match_count)
