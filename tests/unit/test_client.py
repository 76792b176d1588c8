"""Tests for the caller-side history and query client."""
import json

import httpx
import pytest

from maintenance_assistant.client import ConversationHistory, QueryClient, QueryFailed


def make_client(handler) -> QueryClient:
    return QueryClient(
        "http://assistant.test", token="secret-token", transport=httpx.MockTransport(handler)
    )


class TestConversationHistory:
    def test_window_defaults_to_six(self):
        assert ConversationHistory().context_window_size == 6

    def test_sends_only_most_recent_turns(self):
        history = ConversationHistory()
        for i in range(8):
            history.add_message("user" if i % 2 == 0 else "assistant", f"turn {i}")

        sent = history.for_request()

        assert len(history) == 8
        assert [t["content"] for t in sent] == [f"turn {i}" for i in range(2, 8)]
        assert sent[0] == {"role": "user", "content": "turn 2"}

    def test_clear(self):
        history = ConversationHistory(context_window_size=2)
        history.add_message("user", "hello")
        history.clear()

        assert history.for_request() == []

    def test_rejects_unknown_role(self):
        with pytest.raises(ValueError):
            ConversationHistory().add_message("system", "be nice")


class TestQueryClient:
    async def test_ask_sends_bounded_history_and_records_turns(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"response": "Lift part X out."})

        history = ConversationHistory()
        for i in range(8):
            history.add_message("user" if i % 2 == 0 else "assistant", f"turn {i}")
        client = make_client(handler)

        answer = await client.ask("How do I replace part X?", history)

        assert answer == "Lift part X out."
        body = json.loads(requests[0].content)
        assert body["question"] == "How do I replace part X?"
        assert len(body["history"]) == 6
        assert requests[0].headers["Authorization"] == "Bearer secret-token"
        assert [t.content for t in history.get_all_messages()[-2:]] == [
            "How do I replace part X?",
            "Lift part X out.",
        ]
        await client.aclose()

    async def test_error_response_raises_and_keeps_history(self):
        def handler(request):
            return httpx.Response(
                401, json={"error": {"status": "unauthenticated", "message": "You must be logged in."}}
            )

        history = ConversationHistory()
        client = make_client(handler)

        with pytest.raises(QueryFailed) as exc_info:
            await client.ask("How?", history)

        assert exc_info.value.status == "unauthenticated"
        assert exc_info.value.status_code == 401
        assert len(history) == 0
        await client.aclose()
