"""Tests for the conversation API endpoints."""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from app.core.schemas_conversation import InteractionLogEntry, LogKind, Source, StructuredAnswer
from app.graphs.conversation_graph import ConversationTurnResult
from app.main import app

client = TestClient(app)


class TestConverse:
    @patch("app.api.conversation.run_conversation_turn", new_callable=AsyncMock)
    def test_returns_answer_and_sources(self, mock_run):
        mock_run.return_value = ConversationTurnResult(
            answer=StructuredAnswer(text="Logged your apple!", data_summary={"remaining_calories": 2205}),
            sources=[Source(url="https://usda.gov/apple", title="Apple")],
            target_date="2025-04-13",
        )

        response = client.post(
            "/v1/conversation",
            json={"user_id": "user-1", "query": "I ate an apple for a snack", "session_id": "s1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["answer"]["text"] == "Logged your apple!"
        assert data["answer"]["data_summary"]["remaining_calories"] == 2205
        assert data["sources"] == [{"url": "https://usda.gov/apple", "title": "Apple"}]
        assert mock_run.call_args.kwargs["session_id"] == "s1"
        assert mock_run.call_args.kwargs["guest_profile"] is None

    @patch("app.api.conversation.run_conversation_turn", new_callable=AsyncMock)
    def test_passes_guest_profile(self, mock_run):
        mock_run.return_value = ConversationTurnResult(
            answer=StructuredAnswer(text="ok"), sources=[], target_date="2025-04-13"
        )

        client.post(
            "/v1/conversation",
            json={"user_id": "guest-1", "query": "What's my TDEE?", "guest_profile": {"age": 30, "weight": 70}},
        )

        guest = mock_run.call_args.kwargs["guest_profile"]
        assert guest.age == 30
        assert guest.weight == 70

    def test_missing_query_is_rejected(self):
        response = client.post("/v1/conversation", json={"user_id": "user-1"})
        assert response.status_code == 422

    def test_missing_user_is_rejected(self):
        response = client.post("/v1/conversation", json={"query": "hello"})
        assert response.status_code == 422

    @patch("app.api.conversation.run_conversation_turn", new_callable=AsyncMock)
    def test_unexpected_failure_is_500(self, mock_run):
        mock_run.side_effect = RuntimeError("settings missing")

        response = client.post("/v1/conversation", json={"user_id": "user-1", "query": "hello"})

        assert response.status_code == 500


class TestConversationHistory:
    @patch("app.api.conversation.get_daily_logs", new_callable=AsyncMock)
    def test_returns_chronological_messages(self, mock_get):
        mock_get.return_value = [
            InteractionLogEntry(
                timestamp="2025-04-13T12:00:00+00:00",
                query="And lunch?",
                llm_response=StructuredAnswer(text="Try a salad."),
            ),
            InteractionLogEntry(
                timestamp="2025-04-13T08:00:00+00:00",
                query="Breakfast ideas?",
                llm_response=StructuredAnswer(text="Try oats."),
                sources=[Source(url="https://example.org/oats")],
            ),
            InteractionLogEntry(
                timestamp="2025-04-13T18:00:00+00:00",
                query="Dinner?",
                llm_response=StructuredAnswer(text=" "),
            ),
        ]

        response = client.get("/v1/conversation/history", params={"user_id": "user-1", "date": "2025-04-13"})

        assert response.status_code == 200
        messages = response.json()
        assert [(m["role"], m["query"] or m["answer"]["text"]) for m in messages] == [
            ("user", "Breakfast ideas?"),
            ("assistant", "Try oats."),
            ("user", "And lunch?"),
            ("assistant", "Try a salad."),
            ("user", "Dinner?"),
        ]
        assert messages[1]["sources"][0]["url"] == "https://example.org/oats"
        mock_get.assert_awaited_once_with(LogKind.INTERACTION, "user-1", "2025-04-13")

    def test_malformed_date_is_400(self):
        response = client.get("/v1/conversation/history", params={"user_id": "user-1", "date": "04/13/2025"})
        assert response.status_code == 400

    def test_impossible_date_is_400(self):
        response = client.get("/v1/conversation/history", params={"user_id": "user-1", "date": "2025-13-01"})
        assert response.status_code == 400

    @patch("app.api.conversation.get_daily_logs", new_callable=AsyncMock)
    def test_store_failure_is_500(self, mock_get):
        mock_get.side_effect = RuntimeError("db down")

        response = client.get("/v1/conversation/history", params={"user_id": "user-1", "date": "2025-04-13"})

        assert response.status_code == 500
