"""Shared fixtures: in-memory fakes for the store, embedder and LLM."""

from collections.abc import Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

from mneme.src.core.models import MemoryRecord, SearchCandidate


def make_record(memory_id: str, title: str = "", content: str = "", **fields: object) -> MemoryRecord:
    return MemoryRecord(id=memory_id, title=title or f"Memory {memory_id}", content=content, **fields)


def make_candidate(memory_id: str, similarity: float, **fields: object) -> SearchCandidate:
    return SearchCandidate.from_record(make_record(memory_id, **fields), similarity)


class FakeStore:
    """Records calls; returns canned candidates / records."""

    def __init__(self, candidates: Sequence[SearchCandidate] = (), records: Sequence[MemoryRecord] = ()) -> None:
        self.candidates = list(candidates)
        self.records = list(records)
        self.match_calls: list[tuple[list[float], float, int]] = []
        self.fetch_calls: list[list[str]] = []
        self.search_error: Exception | None = None

    def match_memories(self, query_vector: Sequence[float], match_threshold: float = 0.4, match_count: int = 15) -> list[SearchCandidate]:
        self.match_calls.append((list(query_vector), match_threshold, match_count))
        if self.search_error is not None:
            raise self.search_error
        return [c for c in self.candidates if c.similarity >= match_threshold][:match_count]

    def fetch_by_ids(self, ids: Sequence[str]) -> list[MemoryRecord]:
        self.fetch_calls.append(list(ids))
        by_id = {r.id: r for r in self.records}
        return [by_id[i] for i in ids if i in by_id]


def llm_returning(text: str) -> MagicMock:
    """A LangChain-style chat model whose ``ainvoke`` yields *text*."""
    message = MagicMock()
    message.content = text
    llm = MagicMock()
    llm.ainvoke = AsyncMock(return_value=message)
    return llm


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_embedder() -> MagicMock:
    embedder = MagicMock()
    embedder.aembed_query = AsyncMock(return_value=[0.1, 0.2, 0.3])
    return embedder
