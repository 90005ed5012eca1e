"""Tests for the relevance-filtering answerer and its output parser."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from mneme.config.prompt_templates import GENERATION_ERROR_RESPONSE, MISSING_KEY_RESPONSE
from mneme.src.core import answerer
from mneme.src.core.answerer import RelevanceAnswerer, format_history, parse_model_output
from mneme.src.core.models import ConversationTurn

from conftest import llm_returning


class TestParseModelOutput:
    def test_fenced_json_block(self) -> None:
        raw = 'Here you go:\n```json\n{"answer": "You saw a sunset.", "relevantIds": ["id1", "id2"]}\n```'

        result = parse_model_output(raw)

        assert result.answer == "You saw a sunset."
        assert result.relevant_ids == ["id1", "id2"]

    def test_generic_fence(self) -> None:
        result = parse_model_output('```\n{"answer": "Yes.", "relevantIds": ["a"]}\n```')

        assert (result.answer, result.relevant_ids) == ("Yes.", ["a"])

    def test_bare_json(self) -> None:
        result = parse_model_output('  {"answer": "Plain.", "relevantIds": []}  ')

        assert (result.answer, result.relevant_ids) == ("Plain.", [])

    def test_snake_case_key_accepted(self) -> None:
        assert parse_model_output('{"answer": "x", "relevant_ids": ["b"]}').relevant_ids == ["b"]

    def test_prose_degrades_to_raw_text(self) -> None:
        raw = "Sure! Here's the answer: you went to the beach."

        result = parse_model_output(raw)

        assert result.answer == raw
        assert result.relevant_ids == []

    def test_broken_json_degrades_to_raw_text(self) -> None:
        raw = '```json\n{"answer": "cut off", "relevantIds": ["a"\n```'

        result = parse_model_output(raw)

        assert result.answer == raw
        assert result.relevant_ids == []

    def test_non_object_json_degrades(self) -> None:
        assert parse_model_output('["a", "b"]').relevant_ids == []

    def test_deeply_nested_json_degrades_to_raw_text(self) -> None:
        raw = "[" * 100_000 + "]" * 100_000

        result = parse_model_output(raw)

        assert result.answer == raw
        assert result.relevant_ids == []

    def test_deeply_nested_fenced_json_degrades_to_raw_text(self) -> None:
        raw = "```json\n" + '{"a":' * 50_000 + "1" + "}" * 50_000 + "\n```"

        result = parse_model_output(raw)

        assert result.answer == raw
        assert result.relevant_ids == []

    def test_ids_are_coerced_and_deduplicated(self) -> None:
        result = parse_model_output('{"answer": "x", "relevantIds": ["a", 7, "a", null, true, {"id": "z"}]}')

        assert result.relevant_ids == ["a", "7"]

    def test_missing_answer_uses_raw_text(self) -> None:
        raw = '{"relevantIds": ["a"]}'

        result = parse_model_output(raw)

        assert result.answer == raw
        assert result.relevant_ids == ["a"]

    def test_empty_input(self) -> None:
        assert parse_model_output("").answer == ""


class TestFormatHistory:
    def test_labels_roles(self) -> None:
        history = [ConversationTurn(role="user", content="sunset photos"), ConversationTurn(role="assistant", content="You have two.")]

        assert format_history(history) == "User: sunset photos\nAssistant: You have two."

    def test_empty_history_placeholder(self) -> None:
        assert format_history([]) == "(No previous conversation.)"


class TestRelevanceAnswerer:
    @pytest.mark.asyncio
    async def test_returns_parsed_answer(self) -> None:
        llm = llm_returning('```json\n{"answer": "Two sunsets.", "relevantIds": ["id1"]}\n```')

        result = await RelevanceAnswerer(llm).answer_with_filtering("sunset photos", "[Memory ID: id1]", 1)

        assert result.answer == "Two sunsets."
        assert result.relevant_ids == ["id1"]
        llm.ainvoke.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fresh_prompt_has_context_and_band_but_no_history(self) -> None:
        llm = llm_returning('{"answer": "ok", "relevantIds": []}')
        history = [ConversationTurn(role="user", content="EARLIER QUESTION")]

        await RelevanceAnswerer(llm).answer_with_filtering("sunset photos", "CONTEXT BLOCK", 3, history, is_follow_up=False)

        prompt = llm.ainvoke.call_args.args[0][0].content
        assert "CONTEXT BLOCK" in prompt
        assert "sunset photos" in prompt
        assert "60%" in prompt
        assert "3 saved memories" in prompt
        assert "EARLIER QUESTION" not in prompt

    @pytest.mark.asyncio
    async def test_follow_up_prompt_includes_history(self) -> None:
        llm = llm_returning('{"answer": "ok", "relevantIds": []}')
        history = [ConversationTurn(role="user", content="sunset photos"), ConversationTurn(role="assistant", content="Found two.")]

        await RelevanceAnswerer(llm).answer_with_filtering("what about the second one", "CTX", 2, history, is_follow_up=True)

        prompt = llm.ainvoke.call_args.args[0][0].content
        assert "User: sunset photos" in prompt
        assert "Assistant: Found two." in prompt
        assert "what about the second one" in prompt

    @pytest.mark.asyncio
    async def test_unknown_ids_dropped_when_known_ids_given(self) -> None:
        llm = llm_returning('{"answer": "ok", "relevantIds": ["a", "ghost", "b"]}')

        result = await RelevanceAnswerer(llm).answer_with_filtering("q", "ctx", 2, known_ids=["a", "b"])

        assert result.relevant_ids == ["a", "b"]

    @pytest.mark.asyncio
    async def test_llm_error_degrades_to_apology(self) -> None:
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=RuntimeError("quota"))

        result = await RelevanceAnswerer(llm).answer_with_filtering("q", "ctx", 1)

        assert result.answer == GENERATION_ERROR_RESPONSE
        assert result.relevant_ids == []

    @pytest.mark.asyncio
    async def test_empty_llm_output_degrades_to_apology(self) -> None:
        result = await RelevanceAnswerer(llm_returning("   ")).answer_with_filtering("q", "ctx", 1)

        assert result.answer == GENERATION_ERROR_RESPONSE

    @pytest.mark.asyncio
    async def test_content_block_list_is_flattened(self) -> None:
        llm = llm_returning("")
        llm.ainvoke.return_value.content = [{"type": "text", "text": '{"answer": "blocks", '}, {"type": "text", "text": '"relevantIds": ["a"]}'}]

        result = await RelevanceAnswerer(llm).answer_with_filtering("q", "ctx", 1)

        assert (result.answer, result.relevant_ids) == ("blocks", ["a"])

    @pytest.mark.asyncio
    async def test_deeply_nested_output_keeps_raw_answer(self) -> None:
        raw = "[" * 100_000 + "]" * 100_000

        result = await RelevanceAnswerer(llm_returning(raw)).answer_with_filtering("q", "[Memory ID: a]", 1, known_ids=["a"])

        assert result.answer == raw
        assert result.relevant_ids == []

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(answerer, "_llm", None)
        monkeypatch.setattr(answerer.settings, "GOOGLE_API_KEY", None)

        result = await RelevanceAnswerer().answer_with_filtering("q", "ctx", 1)

        assert result.answer == MISSING_KEY_RESPONSE
        assert result.relevant_ids == []
