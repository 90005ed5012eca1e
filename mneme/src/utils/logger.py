"""
Mneme - Logging
================
``get_logger()`` hands every Mneme module a named logger that writes
one line per event to stdout.

Pipeline messages carry a stage tag so a single request can be
followed through the log:

    [EMBED]    query embedding (``embeddings.py``)
    [SEARCH]   LanceDB similarity search and pinned fetches (``vector_store.py``)
    [CONTEXT]  context block assembly
    [ANSWER]   the Gemini answer call and output parsing (``answerer.py``)
    [RAG]      orchestrator steps and stage timings (``rag_engine.py``)

Verbosity follows ``settings.ENV``: ``dev`` logs DEBUG and up,
``prod`` only WARNING and up.
"""

import logging
import sys

from mneme.config.settings import settings

_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}
_DEFAULT_LEVEL = _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """Named logger with a single stdout handler; *level* overrides the ENV-derived default."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved = _DEFAULT_LEVEL if level is None else level
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    # Mneme lines are already on stdout; the root logger would print them twice
    logger.propagate = False
    return logger
