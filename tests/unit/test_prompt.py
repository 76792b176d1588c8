"""Tests for prompt composition and context formatting."""
from maintenance_assistant.rag.prompt import (
    DEFAULT_INSTRUCTIONS,
    compose_prompt,
    render_history,
)
from maintenance_assistant.rag.retriever import NO_CONTEXT_FOUND, format_context
from maintenance_assistant.rag.store_faiss import Chunk, RetrievalResult
from maintenance_assistant.schemas import ConversationTurn


def make_result(source: str, content: str, distance: float, index: int = 0) -> RetrievalResult:
    chunk = Chunk(
        id=index + 1,
        source_document=source,
        chunk_index=index,
        content=content,
        created_at="2026-01-01T00:00:00+00:00",
    )
    return RetrievalResult(chunk=chunk, distance=distance)


def make_history(turns: int):
    return [
        ConversationTurn(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}")
        for i in range(turns)
    ]


class TestFormatContext:
    def test_empty_results_use_sentinel(self):
        assert format_context([]) == NO_CONTEXT_FOUND
        assert format_context([]) != ""

    def test_chunks_prefixed_with_source_in_order(self):
        results = [
            make_result("uploads/engine.pdf", "Most relevant.", 0.1),
            make_result("uploads/brakes.pdf", "Less relevant.", 0.4, index=1),
        ]

        context = format_context(results)

        assert "--- From document: uploads/engine.pdf ---\nMost relevant." in context
        assert "--- From document: uploads/brakes.pdf ---\nLess relevant." in context
        assert context.index("Most relevant.") < context.index("Less relevant.")


class TestComposePrompt:
    def test_contains_every_section(self):
        prompt = compose_prompt(
            DEFAULT_INSTRUCTIONS,
            make_history(2),
            [make_result("uploads/engine.pdf", "Torque the bolts to 40 Nm.", 0.2)],
            "What torque for the head bolts?",
        )

        assert prompt.startswith(DEFAULT_INSTRUCTIONS)
        assert "CONVERSATION HISTORY:\nuser: turn 0\nassistant: turn 1" in prompt
        assert "Torque the bolts to 40 Nm." in prompt
        assert "USER'S QUESTION:\nWhat torque for the head bolts?" in prompt
        assert prompt.endswith("ANSWER:")

    def test_empty_retrieval_renders_sentinel(self):
        prompt = compose_prompt(DEFAULT_INSTRUCTIONS, [], [], "Anything?")

        assert f"RELEVANT DOCUMENT CONTEXT:\n{NO_CONTEXT_FOUND}" in prompt

    def test_renders_all_history_without_truncation(self):
        history = make_history(8)

        prompt = compose_prompt(DEFAULT_INSTRUCTIONS, history, [], "Next?")

        for i in range(8):
            assert f"turn {i}" in prompt
        assert render_history(history).count("\n") == 7

    def test_history_rendered_chronologically(self):
        rendered = render_history(make_history(3))

        assert rendered == "user: turn 0\nassistant: turn 1\nuser: turn 2"

    def test_instructions_constrain_to_context(self):
        assert "ONLY on the provided context" in DEFAULT_INSTRUCTIONS
        assert "not in your documents" in DEFAULT_INSTRUCTIONS

    def test_is_pure(self):
        args = (DEFAULT_INSTRUCTIONS, make_history(2), [make_result("a", "b" * 60, 0.1)], "q?")

        assert compose_prompt(*args) == compose_prompt(*args)
