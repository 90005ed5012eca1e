"""
Mneme - Text Utilities
=======================
Helper functions for embedding-text normalisation and for classifying
a memory by the shape of its ``content`` / ``assets``.

These utilities are consumed by the embedding client, the data models
and the context builder, and should remain stateless and side-effect-free.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

# Any newline flavour (\r\n, \n, \r)
_NEWLINE_RE = re.compile(r"\r\n|\r|\n")

# A single-line link is a bare URL shorter than this
_MAX_BARE_LINK_LENGTH = 500

TYPE_DEFAULT = "default"
TYPE_LINK = "link"
TYPE_IMAGE = "image"


# ── Embedding text ─────────────────────────────────────────────────────

def normalize_for_embedding(text: str) -> str:
    """
    Replace every newline with a single space.

    The embedding model treats line breaks as noise, so both queries
    and stored memories are flattened the same way before embedding.
    """
    return _NEWLINE_RE.sub(" ", text or "")


def build_embedding_text(title: str | None, content: str | None, ai_description: str | None) -> str:
    """
    Compose the text a memory's embedding is computed from.

    Examples::

        build_embedding_text("Beach", "Sunset at Haifa", None)
            → "Beach Sunset at Haifa "
    """
    return f"{title or ''} {content or ''} {ai_description or ''}"


# ── Type inference ─────────────────────────────────────────────────────

def _first_line(content: str) -> str:
    newline_at = content.find("\n")
    return content if newline_at == -1 else content[:newline_at]


def infer_memory_type(content: str | None, assets: Sequence[str] | None, explicit_type: str | None = None) -> str:
    """
    Classify a memory as ``link``, ``image`` or ``default``.

    Rules, first match wins:
        1. An explicit ``link`` / ``image`` tag.
        2. Content is a bare URL (starts with ``http``, no spaces,
           shorter than 500 chars).
        3. Content's first line is a URL (the ``"URL\\ndescription"``
           composite written by the link-save flow).
        4. At least one asset and blank content.
        5. Everything else.

    Examples::

        infer_memory_type("https://example.com", [])              → "link"
        infer_memory_type("https://a.io\\nA great read", [])       → "link"
        infer_memory_type("", ["https://cdn/img.png"])             → "image"
        infer_memory_type("Bought milk", ["https://cdn/img.png"])  → "default"
    """
    if explicit_type in (TYPE_LINK, TYPE_IMAGE):
        return explicit_type

    content = content or ""
    assets = assets or []

    if content.startswith("http") and " " not in content and len(content) < _MAX_BARE_LINK_LENGTH:
        return TYPE_LINK
    if "\n" in content and _first_line(content).startswith("http"):
        return TYPE_LINK
    if assets and not content.strip():
        return TYPE_IMAGE
    return TYPE_DEFAULT


def split_link_content(content: str | None) -> tuple[str, str]:
    """
    Split a link memory's content into ``(url, remainder)``.

    Examples::

        split_link_content("https://a.io\\nDesc\\nPage text") → ("https://a.io", "Desc\\nPage text")
        split_link_content("https://a.io")                   → ("https://a.io", "")
    """
    content = content or ""
    newline_at = content.find("\n")
    if newline_at == -1:
        return content.strip(), ""
    return content[:newline_at].strip(), content[newline_at + 1:]
