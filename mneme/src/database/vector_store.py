"""
Mneme - MemoryVectorStore
==========================
OOP wrapper around LanceDB providing the retrieval pipeline's fixed
query contract:
  • Table creation with a strict PyArrow schema
  • Memory insertion (pre-computed embedding + fields)
  • Thresholded cosine similarity search (``match_memories``)
  • Bulk fetch + client-side ID filter for pinned follow-up turns

Design decisions:
  • **Singleton DB connection** — ``_get_connection()`` caches the
    ``lancedb.DBConnection`` at module level to avoid file-lock issues.
  • **Loose recall** — ``match_memories`` keeps everything at or above
    a low similarity floor.  Deciding what is *actually* relevant is
    the answerer's job, not the store's.
  • **Errors propagate** — backend failures are logged and re-raised;
    the orchestrator converts them into a degraded response.
  • **Un-embedded memories** are stored with a zero vector and
    ``has_embedding = false``; a prefilter keeps them out of search
    while ``fetch_by_ids`` can still return them.

Usage:
    from mneme.src.database.vector_store import MemoryVectorStore

    store = MemoryVectorStore()
    store.add_memories([MemoryRecord(id="a", title="...", embedding=[...])])
    candidates = store.match_memories(query_vector, match_threshold=0.4, match_count=15)
"""

from __future__ import annotations

import math
import threading
from collections.abc import Iterable, Sequence

import lancedb
import pyarrow as pa

from mneme.config.settings import settings
from mneme.src.core.models import MemoryRecord, SearchCandidate
from mneme.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
MemoryRow = dict[str, object]

# ── Constants ──────────────────────────────────────────────────────────
_VECTOR_COLUMN = "vector"
_SEARCHABLE_FILTER = "has_embedding = true"
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}


def memory_schema(dimension: int) -> pa.Schema:
    """PyArrow schema of the memories table for a given vector length."""
    return pa.schema([
        pa.field("id", pa.utf8(), nullable=False),
        pa.field("title", pa.utf8()),
        pa.field("content", pa.utf8()),
        pa.field("assets", pa.list_(pa.utf8())),
        pa.field("type", pa.utf8()),
        pa.field("ai_description", pa.utf8()),
        pa.field("category", pa.utf8()),
        pa.field("x", pa.float64()),
        pa.field("y", pa.float64()),
        pa.field("created_at", pa.timestamp("us", tz="UTC")),
        pa.field("has_embedding", pa.bool_()),
        pa.field(_VECTOR_COLUMN, pa.list_(pa.float32(), dimension)),
    ])


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """
    Return a **singleton** ``lancedb.DBConnection`` for *db_path*.

    Thread-safe via ``_DB_LOCK``.
    """
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("Opening new LanceDB connection: %s", db_path)
                _db_connection_cache[db_path] = lancedb.connect(db_path)
    return _db_connection_cache[db_path]


def _distance_to_similarity(distance: object) -> float:
    """Convert a cosine distance into a similarity clamped to [0, 1]."""
    try:
        similarity = 1.0 - float(distance)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(similarity):
        return 0.0
    return min(max(similarity, 0.0), 1.0)


def _row_to_record(row: MemoryRow) -> MemoryRecord:
    """Build a ``MemoryRecord`` from a table row (vector column dropped)."""
    fields = {k: v for k, v in row.items() if k not in (_VECTOR_COLUMN, "has_embedding", "_distance")}
    fields["title"] = fields.get("title") or ""
    fields["content"] = fields.get("content") or ""
    fields["assets"] = fields.get("assets") or []
    return MemoryRecord.model_validate(fields)


def rank_matches(rows: Iterable[MemoryRow], match_threshold: float, match_count: int) -> list[SearchCandidate]:
    """
    Turn raw search rows into ranked ``SearchCandidate`` objects.

    Keeps rows with ``similarity >= match_threshold``, sorts by
    similarity descending (ties keep backend order) and caps the
    result at ``match_count``.
    """
    scored: list[SearchCandidate] = []
    for row in rows:
        similarity = _distance_to_similarity(row.get("_distance"))
        if similarity < match_threshold:
            continue
        scored.append(SearchCandidate.from_record(_row_to_record(row), similarity))

    scored.sort(key=lambda c: c.similarity, reverse=True)
    return scored[:max(match_count, 0)]


class MemoryVectorStore:
    """
    High-level abstraction over the LanceDB memories table.

    Parameters
    ----------
    db_path
        Override the database directory.  Defaults to ``settings.LANCEDB_PATH``.
    table_name
        Override the table name.  Defaults to ``settings.LANCEDB_TABLE_NAME``.
    dimension
        Vector length.  Defaults to ``settings.EMBEDDING_DIMENSION``.
    """

    __slots__ = ("_db_path", "_table_name", "_dimension", "db", "table")

    def __init__(self, db_path: str | None = None, table_name: str | None = None, dimension: int | None = None) -> None:
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self._dimension: int = dimension or settings.EMBEDDING_DIMENSION
        self.db: lancedb.DBConnection | None = None
        self.table: lancedb.table.Table | None = None
        self._connect()


    def _connect(self) -> None:
        """Open (or re-use) the LanceDB connection and initialise the table."""
        try:
            self.db = _get_connection(self._db_path)

            # exist_ok opens the table when it is already there
            self.table = self.db.create_table(self._table_name, schema=memory_schema(self._dimension), exist_ok=True)
            logger.info("Opened table '%s' (dimension=%d, %d rows).", self._table_name, self._dimension, self.table.count_rows())

        except OSError as exc:
            logger.error("LanceDB filesystem error at %s: %s", self._db_path, exc)
            raise
        except Exception:
            logger.exception("Unexpected error connecting to LanceDB.")
            raise


    def _require_table(self) -> lancedb.table.Table:
        if self.table is None:
            raise RuntimeError("Memory table is not initialised. Call _connect() first.")
        return self.table


    def _to_row(self, record: MemoryRecord) -> MemoryRow:
        embedding = record.embedding or []
        if embedding and len(embedding) != self._dimension:
            raise ValueError(f"Memory '{record.id}' has a {len(embedding)}-dim embedding; table expects {self._dimension}.")

        return {
            "id": record.id,
            "title": record.title,
            "content": record.content,
            "assets": list(record.assets),
            "type": record.type.value if record.type is not None else None,
            "ai_description": record.ai_description,
            "category": record.category,
            "x": record.x,
            "y": record.y,
            "created_at": record.created_at,
            "has_embedding": bool(embedding),
            _VECTOR_COLUMN: [float(v) for v in embedding] if embedding else [0.0] * self._dimension,
        }

    # ------------------------------------------------------------------
    # Writes (save flow / tests)
    # ------------------------------------------------------------------

    def add_memories(self, records: Sequence[MemoryRecord]) -> int:
        """
        Persist memories with their pre-computed embeddings.

        Returns
        -------
        int
            Number of rows added.

        Raises
        ------
        ValueError
            If an embedding length differs from the table dimension.
        """
        table = self._require_table()
        if not records:
            return 0

        rows = [self._to_row(record) for record in records]
        try:
            table.add(rows)
        except OSError as exc:
            logger.error("Failed to write memories to LanceDB: %s", exc)
            raise

        logger.info("Added %d memories. Table '%s' now has %d rows.", len(rows), self._table_name, table.count_rows())
        return len(rows)

    # ------------------------------------------------------------------
    # Reads (retrieval pipeline)
    # ------------------------------------------------------------------

    def match_memories(self, query_vector: Sequence[float], match_threshold: float | None = None, match_count: int | None = None) -> list[SearchCandidate]:
        """
        Cosine similarity search over embedded memories.

        Parameters
        ----------
        query_vector
            Non-empty embedding of the query.
        match_threshold
            Minimum similarity.  Defaults to ``settings.MATCH_THRESHOLD``.
        match_count
            Maximum candidates.  Defaults to ``settings.MATCH_COUNT``.

        Returns
        -------
        list[SearchCandidate]
            Sorted by similarity descending, all ``>= match_threshold``.

        Raises
        ------
        ValueError
            Empty query vector or wrong dimension.
        """
        threshold = settings.MATCH_THRESHOLD if match_threshold is None else match_threshold
        limit = settings.MATCH_COUNT if match_count is None else match_count

        if not query_vector:
            raise ValueError("query_vector must be non-empty.")
        if len(query_vector) != self._dimension:
            raise ValueError(f"query_vector has {len(query_vector)} dims; table expects {self._dimension}.")
        if limit <= 0:
            return []

        if self.table is None:
            logger.warning("[SEARCH] Table '%s' is not available; treating the store as empty.", self._table_name)
            return []

        try:
            rows: list[MemoryRow] = (
                self.table.search(list(query_vector), vector_column_name=_VECTOR_COLUMN)
                .distance_type("cosine")
                .where(_SEARCHABLE_FILTER, prefilter=True)
                .limit(limit)
                .to_list()
            )
        except Exception as exc:
            logger.error("[SEARCH] LanceDB query failed: %s", exc)
            raise

        candidates = rank_matches(rows, threshold, limit)
        logger.info("[SEARCH] %d/%d rows at or above threshold %.2f.", len(candidates), len(rows), threshold)
        return candidates


    def fetch_all(self) -> list[MemoryRecord]:
        """Return every stored memory (vectors omitted).  A missing table is an empty store."""
        if self.table is None:
            return []
        rows: list[MemoryRow] = self.table.to_arrow().to_pylist()
        return [_row_to_record(row) for row in rows]


    def fetch_by_ids(self, ids: Sequence[str]) -> list[MemoryRecord]:
        """
        Bulk-fetch all memories, then keep those whose ID is in *ids*.

        Order follows *ids*; unknown IDs are dropped and duplicates
        collapse to their first occurrence.
        """
        if not ids:
            return []

        by_id = {record.id: record for record in self.fetch_all()}
        ordered: list[MemoryRecord] = []
        seen: set[str] = set()
        for memory_id in ids:
            if memory_id in seen or memory_id not in by_id:
                continue
            seen.add(memory_id)
            ordered.append(by_id[memory_id])

        missing = len(set(ids) - seen)
        if missing:
            logger.warning("[SEARCH] %d pinned memory id(s) no longer exist.", missing)
        return ordered


    def count(self) -> int:
        """Return the total number of rows in the table."""
        if self.table is None:
            return 0
        return self.table.count_rows()


    def drop_table(self) -> None:
        """Drop the memories table (useful for testing)."""
        if self.db is None:
            logger.warning("No database connection; nothing to drop.")
            return
        try:
            self.db.drop_table(self._table_name)
            self.table = None
            logger.info("Dropped table '%s'.", self._table_name)
        except ValueError:
            logger.warning("Table '%s' does not exist — nothing to drop.", self._table_name)
        except OSError as exc:
            logger.error("Filesystem error dropping table '%s': %s", self._table_name, exc)
            raise


    def __repr__(self) -> str:
        return f"MemoryVectorStore(db='{self._db_path}', table='{self._table_name}', rows={self.count()})"
