"""
Mneme - Relevance-Filtering Answerer
======================================
Asks Gemini to do two things in one call: answer the query from the
retrieved memories, and pick which of those memories are *actually*
relevant.  The pick drives what the user sees.

Prompting
---------
* Fresh question → ``ANSWER_PROMPT_TEMPLATE`` (context + query).
* Follow-up turn → ``FOLLOW_UP_PROMPT_TEMPLATE`` (context + history +
  query) so "what about the second one" resolves against the previous
  exchange.

Parsing
-------
The model is asked for a JSON object but its output is not trusted to
be one.  ``parse_model_output`` tries, in order:

    1. a fenced ```json block
    2. any fenced code block
    3. the whole trimmed text

and falls back to ``AnswerResult(answer=<raw text>, relevant_ids=[])``
when none of them is a JSON object.  It never raises.

Failures
--------
* No API key → ``MISSING_KEY_RESPONSE``.
* Model call raises → ``GENERATION_ERROR_RESPONSE``.

Neither is retried.  The LLM client is a **module-level singleton**,
created lazily on first use.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence

from mneme.config.prompt_templates import ANSWER_PROMPT_TEMPLATE, FOLLOW_UP_PROMPT_TEMPLATE, GENERATION_ERROR_RESPONSE, MISSING_KEY_RESPONSE, NO_HISTORY_PLACEHOLDER
from mneme.config.settings import settings
from mneme.src.core.models import AnswerResult, ConversationTurn
from mneme.src.utils.logger import get_logger

logger = get_logger(__name__)

_JSON_FENCE_RE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE_RE = re.compile(r"```[\w-]*\s*(.*?)\s*```", re.DOTALL)

_ID_KEYS = ("relevantIds", "relevant_ids")


# ══════════════════════════════════════════════════════════════════════
#  MODEL OUTPUT PARSING
# ══════════════════════════════════════════════════════════════════════


def _json_candidates(raw: str) -> list[str]:
    candidates: list[str] = []
    fenced_json = _JSON_FENCE_RE.search(raw)
    if fenced_json:
        candidates.append(fenced_json.group(1))
    fenced_any = _ANY_FENCE_RE.search(raw)
    if fenced_any:
        candidates.append(fenced_any.group(1))
    candidates.append(raw.strip())
    return candidates


def _coerce_ids(value: object) -> list[str]:
    """Keep string / integer IDs, in order, without duplicates."""
    if not isinstance(value, list):
        return []
    ids: list[str] = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (str, int)):
            continue
        memory_id = str(item).strip()
        if memory_id and memory_id not in ids:
            ids.append(memory_id)
    return ids


def parse_model_output(raw: str) -> AnswerResult:
    """
    Extract ``{"answer", "relevantIds"}`` from free-form model output.

    Examples::

        parse_model_output('```json\\n{"answer": "Yes.", "relevantIds": ["a"]}\\n```')
            → AnswerResult(answer="Yes.", relevant_ids=["a"])
        parse_model_output("Sure! Here's the answer: ...")
            → AnswerResult(answer="Sure! Here's the answer: ...", relevant_ids=[])
    """
    raw = raw or ""
    for candidate in _json_candidates(raw):
        try:
            data = json.loads(candidate)
        except (json.JSONDecodeError, ValueError, RecursionError):
            continue
        if not isinstance(data, dict):
            continue

        answer = data.get("answer")
        relevant_ids: list[str] = []
        for key in _ID_KEYS:
            if key in data:
                relevant_ids = _coerce_ids(data[key])
                break

        if not isinstance(answer, str) or not answer.strip():
            answer = raw.strip()
        return AnswerResult(answer=answer.strip(), relevant_ids=relevant_ids)

    logger.warning("[ANSWER] Model output is not JSON — using raw text, no relevance filter.")
    return AnswerResult(answer=raw.strip(), relevant_ids=[])


def _message_text(response: object) -> str:
    """Flatten a LangChain message (string or content-block list) to text."""
    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type", "text") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return str(content)


def format_history(history: Sequence[ConversationTurn]) -> str:
    """Format conversation turns into a readable transcript."""
    if not history:
        return NO_HISTORY_PLACEHOLDER
    return "\n".join(f"{'User' if turn.role == 'user' else 'Assistant'}: {turn.content}" for turn in history)


# ══════════════════════════════════════════════════════════════════════
#  GEMINI LLM SINGLETON
# ══════════════════════════════════════════════════════════════════════

_llm: object | None = None


def _get_default_llm() -> object | None:
    """Return (or create) the module-level Gemini chat model, or None without a key."""
    global _llm
    if _llm is None:
        if not settings.has_google_key:
            logger.warning("[ANSWER] GOOGLE_API_KEY is not set — answer generation is disabled.")
            return None

        from langchain_google_genai import ChatGoogleGenerativeAI

        _llm = ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=settings.LLM_TEMPERATURE, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
        logger.info("[ANSWER] LLM initialised: %s (temperature=%.1f)", settings.LLM_MODEL, settings.LLM_TEMPERATURE)
    return _llm


# ══════════════════════════════════════════════════════════════════════
#  ANSWERER
# ══════════════════════════════════════════════════════════════════════


class RelevanceAnswerer:
    """
    One LLM call that both answers and filters.

    Parameters
    ----------
    llm
        Optional injected LangChain chat model (anything with
        ``ainvoke(messages)``).  Defaults to the Gemini singleton.
    """

    __slots__ = ("_llm",)

    def __init__(self, llm: object | None = None) -> None:
        self._llm = llm


    @staticmethod
    def build_prompt(query: str, context: str, candidate_count: int, history: Sequence[ConversationTurn], is_follow_up: bool) -> str:
        """Render the fresh-question or follow-up prompt."""
        if is_follow_up:
            return FOLLOW_UP_PROMPT_TEMPLATE.format(candidate_count=candidate_count, context=context, history=format_history(history), query=query)
        return ANSWER_PROMPT_TEMPLATE.format(candidate_count=candidate_count, context=context, query=query, relevance_band=settings.RELEVANCE_BAND)


    async def answer_with_filtering(self, query: str, context: str, candidate_count: int, history: Sequence[ConversationTurn] = (), is_follow_up: bool = False, known_ids: Sequence[str] | None = None) -> AnswerResult:
        """
        Generate an answer and the list of relevant memory IDs.

        Parameters
        ----------
        known_ids
            When given, ``relevant_ids`` is intersected with it so IDs
            the model invented never reach the caller.
        """
        llm = self._llm if self._llm is not None else _get_default_llm()
        if llm is None:
            return AnswerResult(answer=MISSING_KEY_RESPONSE, relevant_ids=[])

        prompt = self.build_prompt(query, context, candidate_count, history if is_follow_up else (), is_follow_up)

        try:
            from langchain_core.messages import HumanMessage

            response = await llm.ainvoke([HumanMessage(content=prompt)])  # type: ignore[attr-defined]
            raw = _message_text(response)
        except Exception:
            logger.exception("[ANSWER] LLM call failed.")
            return AnswerResult(answer=GENERATION_ERROR_RESPONSE, relevant_ids=[])

        if not raw.strip():
            logger.warning("[ANSWER] LLM returned an empty response.")
            return AnswerResult(answer=GENERATION_ERROR_RESPONSE, relevant_ids=[])

        result = parse_model_output(raw)

        if known_ids is not None:
            allowed = set(known_ids)
            unknown = [i for i in result.relevant_ids if i not in allowed]
            if unknown:
                logger.warning("[ANSWER] Dropping %d id(s) not among the candidates: %s", len(unknown), unknown)
                result = AnswerResult(answer=result.answer, relevant_ids=[i for i in result.relevant_ids if i in allowed])

        logger.info("[ANSWER] %d/%d candidates judged relevant (follow_up=%s).", len(result.relevant_ids), candidate_count, is_follow_up)
        return result
