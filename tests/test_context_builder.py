"""Tests for build_context."""

from mneme.config.prompt_templates import CONTEXT_SEPARATOR
from mneme.src.core.context_builder import build_context

from conftest import make_candidate


class TestBuildContext:
    def test_blocks_follow_candidate_order(self) -> None:
        candidates = [make_candidate("id1", 0.82, title="Sunset"), make_candidate("id2", 0.65, title="Pier"), make_candidate("id3", 0.41, title="Milk")]

        blocks = build_context(candidates, show_scores=True).split(CONTEXT_SEPARATOR)

        assert len(blocks) == 3
        assert blocks[0].startswith("[Memory ID: id1] (Relevance: 82%)")
        assert blocks[1].startswith("[Memory ID: id2] (Relevance: 65%)")
        assert blocks[2].startswith("[Memory ID: id3] (Relevance: 41%)")

    def test_scores_hidden_for_follow_up(self) -> None:
        context = build_context([make_candidate("a", 1.0, title="Pinned")], show_scores=False)

        assert context.splitlines()[0] == "[Memory ID: a]"
        assert "Relevance" not in context

    def test_blank_content_is_omitted(self) -> None:
        context = build_context([make_candidate("a", 0.5, title="Photo", content="   ")])

        assert "Content:" not in context

    def test_visual_content_labelled_separately(self) -> None:
        candidate = make_candidate("a", 0.7, title="Trip", content="Day two", ai_description="A red kayak on a lake")

        lines = build_context([candidate]).splitlines()

        assert "Content: Day two" in lines
        assert "Visual Content (AI description of the image): A red kayak on a lake" in lines

    def test_blank_description_is_omitted(self) -> None:
        assert "Visual Content" not in build_context([make_candidate("a", 0.7, ai_description="  ")])

    def test_link_memories_surface_url(self) -> None:
        candidate = make_candidate("l", 0.6, title="Blog", content="https://blog.example\nA post about kayaks")

        lines = build_context([candidate]).splitlines()

        assert "URL: https://blog.example" in lines
        assert "Content: A post about kayaks" in lines

    def test_image_only_memory_keeps_title_and_description(self) -> None:
        candidate = make_candidate("i", 0.5, title="IMG_0042", content="", assets=["https://cdn/x.png"], ai_description="Snowy mountain")

        context = build_context([candidate])

        assert "Title: IMG_0042" in context
        assert "Snowy mountain" in context

    def test_no_candidates_gives_empty_context(self) -> None:
        assert build_context([]) == ""
