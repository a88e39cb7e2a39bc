"""Tests for the HTTP and in-process assistant backends."""

from unittest.mock import MagicMock

import pytest
import requests

from career_assistant.core.api_client import (
    BackendError,
    HttpAssistantBackend,
    InProcessAssistantBackend,
)
from career_assistant.core.completion_gateway import CompletionGateway, VISITOR_GREETING, WELCOME_SENTINEL
from career_assistant.flows.handoff_evaluator import build_handoff
from career_assistant.state.conversation_state import ConversationTurn, TurnRole
from conftest import OFF_HOURS, FakeCompletionProvider


def handoff():
    turns = [ConversationTurn(TurnRole.USER, "I'm Jane"), ConversationTurn(TurnRole.ASSISTANT, "Hi Jane")]
    return build_handoff("Jane", "jane@example.com", "Acme", turns)


class TestHttpAssistantBackend:

    def _backend(self, status=200, payload=None, error=None):
        session = MagicMock()
        if error is not None:
            session.post.side_effect = error
        else:
            session.post.return_value.ok = 200 <= status < 300
            session.post.return_value.status_code = status
            session.post.return_value.json.return_value = payload
        return HttpAssistantBackend("https://assistant.test/", session=session), session

    def test_complete(self):
        backend, session = self._backend(payload={"message": "Hello"})
        assert backend.complete("hi", [], {"messageCount": 1}) == "Hello"
        session.post.assert_called_once_with(
            "https://assistant.test/api/claude",
            json={"message": "hi", "messageHistory": [], "browserData": {"messageCount": 1}},
            timeout=None,
        )

    def test_http_error(self):
        backend, _ = self._backend(status=500, payload={"error": "AI service temporarily unavailable"})
        with pytest.raises(BackendError):
            backend.complete("hi", [], {})

    def test_transport_error(self):
        backend, _ = self._backend(error=requests.ConnectionError("refused"))
        with pytest.raises(BackendError):
            backend.complete("hi", [], {})

    def test_missing_message(self):
        backend, _ = self._backend(payload={"id": "x"})
        with pytest.raises(BackendError):
            backend.complete("hi", [], {})

    def test_send_handoff(self):
        backend, session = self._backend(payload={"success": True})
        backend.send_handoff(handoff())
        url = session.post.call_args.args[0]
        body = session.post.call_args.kwargs["json"]
        assert url == "https://assistant.test/api/chat"
        assert body["isInterviewHandoff"] is True
        assert body["userName"] == "Jane"


class TestInProcessAssistantBackend:

    def _gateway(self, provider, biography):
        return CompletionGateway(provider, biography=biography, clock=lambda: OFF_HOURS)

    def test_complete(self, biography):
        backend = InProcessAssistantBackend(self._gateway(FakeCompletionProvider("Sure"), biography))
        assert backend.complete("hi", [], {}) == "Sure"

    def test_welcome(self, biography):
        backend = InProcessAssistantBackend(self._gateway(None, biography))
        assert backend.complete(WELCOME_SENTINEL, [], {}) == VISITOR_GREETING

    def test_gateway_error_raises(self, biography):
        backend = InProcessAssistantBackend(self._gateway(None, biography))
        with pytest.raises(BackendError):
            backend.complete("hi", [], {})

    def test_handoff_without_relay(self, biography):
        backend = InProcessAssistantBackend(self._gateway(None, biography))
        with pytest.raises(BackendError):
            backend.send_handoff(handoff())

    def test_handoff_relay_failure(self, biography):
        relay = MagicMock()
        relay.send.return_value = False
        backend = InProcessAssistantBackend(self._gateway(None, biography), relay=relay)
        with pytest.raises(BackendError):
            backend.send_handoff(handoff())

    def test_handoff_sent(self, biography):
        relay = MagicMock()
        relay.send.return_value = True
        backend = InProcessAssistantBackend(self._gateway(None, biography), relay=relay)
        backend.send_handoff(handoff())
        message = relay.send.call_args.args[0]
        assert message["text"] == "🔥 Qualified Candidate - AI Interview Hand-off"
