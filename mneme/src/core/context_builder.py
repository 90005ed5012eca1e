"""
Mneme - Context Builder
========================
Formats ranked search candidates into the single text block the answer
model reads.  Pure function, no I/O.

Block layout (one per candidate, in ranked order)::

    [Memory ID: 3f2a…] (Relevance: 82%)
    Title: Sunset at the pier
    URL: https://…                       ← link memories only
    Content: …                           ← only if non-blank
    Visual Content (AI description of the image): …   ← only if non-blank

Blocks are joined with ``CONTEXT_SEPARATOR`` so the model can segment
them unambiguously.  The relevance suffix is omitted on follow-up turns,
where candidates are pinned rather than freshly ranked.
"""

from __future__ import annotations

from collections.abc import Sequence

from mneme.config.prompt_templates import CONTEXT_SEPARATOR
from mneme.src.core.models import MemoryType, SearchCandidate
from mneme.src.utils.text_utils import split_link_content


def _format_block(candidate: SearchCandidate, show_scores: bool) -> str:
    header = f"[Memory ID: {candidate.id}]"
    if show_scores:
        header += f" (Relevance: {round(candidate.similarity * 100)}%)"

    lines = [header, f"Title: {(candidate.title or '').strip() or '(untitled)'}"]

    content = candidate.content or ""
    if candidate.resolved_type is MemoryType.LINK:
        url, content = split_link_content(content)
        if url:
            lines.append(f"URL: {url}")

    if content.strip():
        lines.append(f"Content: {content.strip()}")

    description = (candidate.ai_description or "").strip()
    if description:
        lines.append(f"Visual Content (AI description of the image): {description}")

    return "\n".join(lines)


def build_context(candidates: Sequence[SearchCandidate], show_scores: bool = True) -> str:
    """
    Join one block per candidate, preserving the given order.

    Args:
        candidates:  Ranked (or pinned) candidates.
        show_scores: Append the similarity percentage to each header.

    Returns:
        The context string; empty when there are no candidates.
    """
    return CONTEXT_SEPARATOR.join(_format_block(c, show_scores) for c in candidates)
