"""Prompt composition for grounded answers."""
from typing import Sequence

from maintenance_assistant.rag.retriever import format_context
from maintenance_assistant.rag.store_faiss import RetrievalResult
from maintenance_assistant.schemas import ConversationTurn

DEFAULT_INSTRUCTIONS = (
    "You are an expert equipment maintenance assistant. Answer the user's "
    "question based ONLY on the provided context from service manuals and the "
    "recent conversation history. If the context doesn't contain the answer, "
    "state that the information is not in your documents."
)


def render_history(history: Sequence[ConversationTurn]) -> str:
    """Render turns as ``role: content`` lines, oldest first.

    Callers are expected to send at most the last 6 turns; nothing is
    truncated here.
    """
    return "\n".join(f"{turn.role}: {turn.content}" for turn in history)


def compose_prompt(
    instructions: str,
    history: Sequence[ConversationTurn],
    retrieved: Sequence[RetrievalResult],
    question: str,
) -> str:
    """Merge instructions, history, retrieved context and question into one prompt."""
    return f"""{instructions}

CONVERSATION HISTORY:
{render_history(history)}

RELEVANT DOCUMENT CONTEXT:
{format_context(retrieved)}

USER'S QUESTION:
{question}

ANSWER:"""
