"""
Mneme - Data Models
====================
Pydantic models shared by every stage of the retrieval pipeline.

``MemoryRecord``
    A stored user item, as read from the vector store.  The core only
    reads these — creation, edits and deletion belong to the save flow.

``SearchCandidate``
    A ``MemoryRecord`` annotated with a similarity score in [0, 1].
    Produced by the vector search (or synthesised with 1.0 for pinned
    follow-up turns); never persisted.

``ConversationTurn``
    One ``user`` / ``assistant`` message of the caller-held history.

``AnswerResult`` / ``SearchResponse``
    Outputs of the answerer and of the orchestrator respectively.

Known limitation: a stored ``embedding`` is not recomputed when
``title`` / ``content`` / ``ai_description`` are edited.  Only an
explicit re-embedding pass refreshes it.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from mneme.src.utils.text_utils import infer_memory_type


class MemoryType(str, Enum):
    DEFAULT = "default"
    LINK = "link"
    IMAGE = "image"


class MemoryRecord(BaseModel):
    """A saved note, link or image."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    content: str = ""
    assets: list[str] = Field(default_factory=list)
    type: MemoryType | None = None
    ai_description: str | None = None
    embedding: list[float] | None = None
    category: str | None = None
    x: float | None = None
    y: float | None = None
    created_at: datetime | None = None

    @property
    def resolved_type(self) -> MemoryType:
        """Explicit ``type`` if set, otherwise inferred from content shape."""
        explicit = self.type.value if self.type is not None else None
        return MemoryType(infer_memory_type(self.content, self.assets, explicit))


class SearchCandidate(MemoryRecord):
    """A memory returned by retrieval, not yet judged for true relevance."""

    similarity: float = Field(ge=0.0, le=1.0)

    @classmethod
    def from_record(cls, record: MemoryRecord, similarity: float) -> SearchCandidate:
        return cls(**record.model_dump(exclude={"similarity"}), similarity=similarity)


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AnswerResult(BaseModel):
    """Answer text plus the candidate IDs the model judged relevant."""

    answer: str
    relevant_ids: list[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    """
    Caller-facing result of one retrieval request.

    ``memories`` is the filtered display set; ``memory_ids`` is the full,
    unfiltered candidate set the caller pins for the next follow-up turn.
    """

    model_config = ConfigDict(populate_by_name=True)

    memories: list[SearchCandidate] = Field(default_factory=list)
    answer: str | None = None
    memory_ids: list[str] = Field(default_factory=list, alias="memoryIds")

    @classmethod
    def empty(cls, answer: str | None = None) -> SearchResponse:
        return cls(memories=[], answer=answer, memory_ids=[])
