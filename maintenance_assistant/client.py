"""Caller-side helpers for the query API.

The server never stores conversation state. Callers own the history and are
expected to send only the most recent turns; ConversationHistory enforces
that window on the client side.
"""
from typing import Dict, List, Optional
import httpx
import structlog

from maintenance_assistant import config
from maintenance_assistant.schemas import ConversationTurn

logger = structlog.get_logger()


class ConversationHistory:
    """In-memory conversation buffer for one chat."""

    def __init__(self, context_window_size: int = None):
        """Initialize the history buffer.

        Args:
            context_window_size: Number of recent turns sent with each request
                (defaults to config.HISTORY_WINDOW)
        """
        self.context_window_size = context_window_size or config.HISTORY_WINDOW
        self._turns: List[ConversationTurn] = []

    def add_message(self, role: str, content: str) -> None:
        self._turns.append(ConversationTurn(role=role, content=content))

    def get_all_messages(self) -> List[ConversationTurn]:
        return list(self._turns)

    def for_request(self) -> List[Dict[str, str]]:
        """Format the most recent turns for a query request, oldest first."""
        recent = self._turns[-self.context_window_size:] if self.context_window_size else []
        return [turn.model_dump() for turn in recent]

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)


class QueryFailed(Exception):
    """The query API returned an error response."""

    def __init__(self, status: str, message: str, status_code: int):
        self.status = status
        self.message = message
        self.status_code = status_code
        super().__init__(f"{status}: {message}")


class QueryClient:
    """Async client for the query API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout or config.REQUEST_TIMEOUT * 2,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def ask(self, question: str, history: ConversationHistory) -> str:
        """Send a question with the bounded history.

        On success both the question and the answer are appended to the
        history.

        Raises:
            QueryFailed: If the server returns an error response
        """
        payload = {"question": question, "history": history.for_request()}

        response = await self._client.post("/api/query", json=payload)

        if response.is_error:
            try:
                error = response.json().get("error", {})
            except ValueError:
                error = {}
            logger.warning(
                "query_request_failed",
                status_code=response.status_code,
                status=error.get("status"),
            )
            raise QueryFailed(
                error.get("status", "internal"),
                error.get("message", response.reason_phrase),
                response.status_code,
            )

        answer = response.json()["response"]
        history.add_message("user", question)
        history.add_message("assistant", answer)
        return answer
