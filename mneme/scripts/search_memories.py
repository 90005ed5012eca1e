"""
Mneme - Memory Search Script
=============================
CLI entry point that runs one retrieval request end-to-end and prints
what the caller would receive:
    1. Load settings (fail-fast on invalid configuration).
    2. Build the default search engine over the LanceDB table.
    3. Run ``perform_search`` (initial turn, or follow-up with ``--pin``).
    4. Print the answer, the displayed memories and the full candidate IDs.

Flags:
    --pin ID        Pin a memory ID (repeatable) — runs a follow-up turn.
    --history FILE  JSON file with prior turns: [{"role": ..., "content": ...}].
    --threshold F   Override MATCH_THRESHOLD for this run.
    --limit N       Override MATCH_COUNT for this run.
    --json          Print the raw response as JSON.

Usage:
    python -m mneme.scripts.search_memories "sunset photos"
    python -m mneme.scripts.search_memories "tell me more" --pin a --pin b --history turns.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mneme.src.core.models import SearchResponse

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="search_memories", description="Mneme — Ask a question over your saved memories.")
    parser.add_argument("query", help="Natural-language question.")
    parser.add_argument("--pin", action="append", default=[], metavar="ID", help="Pinned memory ID from a previous turn (repeatable).")
    parser.add_argument("--history", type=Path, default=None, metavar="FILE", help="JSON file with prior conversation turns.")
    parser.add_argument("--threshold", type=float, default=None, help="Minimum similarity (overrides MATCH_THRESHOLD).")
    parser.add_argument("--limit", type=int, default=None, help="Maximum candidates (overrides MATCH_COUNT).")
    parser.add_argument("--json", action="store_true", default=False, help="Print the raw response as JSON.")
    return parser.parse_args(argv)


def _load_history(path: Path | None) -> list[dict[str, str]]:
    if path is None:
        return []
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of turns.")
    return data


# ── Main Orchestration ─────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    t_settings = time.perf_counter()
    try:
        from mneme.config.settings import Settings, settings

        overrides = {}
        if args.threshold is not None:
            overrides["MATCH_THRESHOLD"] = args.threshold
        if args.limit is not None:
            overrides["MATCH_COUNT"] = args.limit
        # Flag values pass through the same range validators as .env values
        run_settings = Settings.model_validate({**settings.model_dump(), **overrides}) if overrides else settings
        history = _load_history(args.history)
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file and flags:\n")
        print(f"  {exc}")
        print()
        return 1
    settings_ms = (time.perf_counter() - t_settings) * 1000

    from mneme.src.core.rag_engine import perform_search

    t_search = time.perf_counter()
    response = asyncio.run(perform_search(
        args.query,
        history,
        args.pin,
        match_threshold=run_settings.MATCH_THRESHOLD,
        match_count=run_settings.MATCH_COUNT,
    ))
    search_ms = (time.perf_counter() - t_search) * 1000

    if args.json:
        print(response.model_dump_json(by_alias=True, exclude={"memories": {"__all__": {"embedding"}}}, indent=2))
        return 0

    _print_response(args.query, response, search_ms)
    print(f"Settings:  {settings_ms:.1f}ms (threshold={run_settings.MATCH_THRESHOLD:.2f}, limit={run_settings.MATCH_COUNT})")
    return 0


def _print_response(query: str, response: SearchResponse, search_ms: float) -> None:
    print()
    print("=" * 60)
    print(f"Query: {query}")
    print("=" * 60)
    print(f"\n{response.answer if response.answer is not None else '(no answer)'}\n")

    for i, memory in enumerate(response.memories, 1):
        print(f"--- Memory {i} ---")
        print(f"  ID:         {memory.id}")
        print(f"  Title:      {memory.title}")
        print(f"  Type:       {memory.resolved_type.value}")
        print(f"  Similarity: {memory.similarity:.2f}")

    print()
    print(f"Candidate IDs (pin these for a follow-up): {', '.join(response.memory_ids) or '(none)'}")
    print(f"Search:    {search_ms:.1f}ms")


if __name__ == "__main__":
    sys.exit(main())
