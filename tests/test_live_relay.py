"""Tests for the two-way live chat hub and its Socket Mode listener."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from slack_sdk.errors import SlackApiError

from career_assistant.config import settings
from career_assistant.notifications.live_relay import LiveChatHub, build_socket_mode_listener
from conftest import OFF_HOURS

POSTED = {"ok": True, "ts": "1717599600.000100", "channel": "C123"}


@pytest.fixture
def web_client():
    client = MagicMock()
    client.chat_postMessage.return_value = POSTED
    client.users_info.return_value = {"user": {"real_name": "Ryan Clayton", "name": "ryan"}}
    return client


@pytest.fixture
def hub(web_client):
    return LiveChatHub(web_client, channel="#recruiter", clock=lambda: OFF_HOURS)


def slack_error(code):
    return SlackApiError(code, response={"ok": False, "error": code})


def owner_event(**overrides):
    event = {"type": "message", "channel": "C123", "user": "U1", "text": "Happy to chat!", "ts": "1717599660.000200"}
    event.update(overrides)
    return event


class TestConnections:

    def test_register_and_unregister(self, hub):
        first = hub.register(lambda payload: None)
        second = hub.register(lambda payload: None)
        assert first != second
        assert hub.connection_count == 2

        hub.unregister(first)
        hub.unregister(first)
        assert hub.connection_count == 1

    def test_connection_payload(self, hub):
        assert hub.connection_payload("abc") == {
            "type": "connection",
            "status": "connected",
            "connectionId": "abc",
            "ownerOnline": True,
        }


class TestClientMessages:

    def test_chat_message_posted_and_acknowledged(self, hub, web_client):
        reply = hub.handle_client_message("conn1", {"type": "chat_message", "id": "m1", "text": "Hi Ryan", "userName": "Jane"})

        assert reply == {"type": "message_received", "messageId": "m1", "slackTimestamp": "1717599600.000100"}
        kwargs = web_client.chat_postMessage.call_args.kwargs
        assert kwargs["channel"] == "#recruiter"
        assert kwargs["text"] == "💬 Live Chat Message"
        fields = [f["text"] for f in kwargs["blocks"][1]["fields"]]
        assert fields == ["*Visitor:* Jane", "*Connection:* conn1"]
        assert kwargs["blocks"][2]["text"]["text"] == "*Message:*\n> Hi Ryan"

    def test_anonymous_visitor(self, hub, web_client):
        hub.handle_client_message("conn1", {"type": "chat_message", "text": "Hello"})
        fields = web_client.chat_postMessage.call_args.kwargs["blocks"][1]["fields"]
        assert fields[0]["text"] == "*Visitor:* Anonymous"

    def test_empty_text_not_posted(self, hub, web_client):
        assert hub.handle_client_message("conn1", {"type": "chat_message", "text": "  "}) is None
        web_client.chat_postMessage.assert_not_called()

    def test_slack_failure_returns_no_ack(self, hub, web_client):
        web_client.chat_postMessage.side_effect = slack_error("channel_not_found")
        assert hub.handle_client_message("conn1", {"type": "chat_message", "text": "Hello"}) is None

    def test_typing_start(self, hub, web_client):
        hub.handle_client_message("conn1", {"type": "typing_start", "userName": "Jane", "threadTs": "1.2"})
        web_client.chat_postMessage.assert_called_once_with(
            channel="#recruiter", text="💭 Jane is typing on the website...", thread_ts="1.2"
        )

    def test_typing_start_without_name_or_thread(self, hub, web_client):
        hub.handle_client_message("conn1", {"type": "typing_start"})
        web_client.chat_postMessage.assert_called_once_with(
            channel="#recruiter", text="💭 Someone is typing on the website..."
        )

    @pytest.mark.parametrize("frame", [{"type": "typing_stop"}, {"type": "mystery"}, {}])
    def test_other_frames_ignored(self, hub, web_client, frame):
        assert hub.handle_client_message("conn1", frame) is None
        web_client.chat_postMessage.assert_not_called()


class TestSlackEvents:

    def test_broadcast_to_every_connection(self, hub):
        received_a, received_b = [], []
        hub.register(received_a.append)
        hub.register(received_b.append)

        assert hub.handle_slack_event(owner_event(channel="#recruiter", thread_ts="1.0")) == 2
        assert received_a == received_b == [{
            "type": "slack_message",
            "id": "1717599660.000200",
            "text": "Happy to chat!",
            "sender": "owner",
            "senderName": "Ryan Clayton",
            "timestamp": "2024-06-05T15:01:00.000200+00:00",
            "threadTs": "1.0",
        }]

    def test_channel_id_learned_from_post(self, hub):
        received = []
        hub.register(received.append)
        assert hub.handle_slack_event(owner_event()) == 0

        hub.handle_client_message("conn1", {"type": "chat_message", "text": "Hi"})
        assert hub.handle_slack_event(owner_event()) == 1

    @pytest.mark.parametrize("event", [
        owner_event(channel="C999"),
        owner_event(channel="#recruiter", bot_id="B1"),
        owner_event(channel="#recruiter", subtype="message_changed"),
        owner_event(channel="#recruiter", ts="not-a-ts"),
    ])
    def test_ignored_events(self, hub, event):
        received = []
        hub.register(received.append)
        assert hub.handle_slack_event(event) == 0
        assert received == []

    def test_user_lookup_failure_uses_owner_name(self, hub, web_client):
        web_client.users_info.side_effect = slack_error("user_not_found")
        received = []
        hub.register(received.append)
        hub.handle_slack_event(owner_event(channel="#recruiter"))
        assert received[0]["senderName"] == settings.OWNER_NAME

    def test_falls_back_to_user_handle(self, hub, web_client):
        web_client.users_info.return_value = {"user": {"real_name": "", "name": "ryan"}}
        received = []
        hub.register(received.append)
        hub.handle_slack_event(owner_event(channel="#recruiter"))
        assert received[0]["senderName"] == "ryan"

    def test_failed_connection_does_not_block_others(self, hub):
        def broken(payload):
            raise RuntimeError("socket closed")

        received = []
        hub.register(broken)
        hub.register(received.append)
        assert hub.handle_slack_event(owner_event(channel="#recruiter")) == 1
        assert len(received) == 1


class TestSocketModeListener:

    def _request(self, req_type="events_api", event=None):
        return SimpleNamespace(type=req_type, envelope_id="env-1", payload={"event": event or owner_event(channel="#recruiter")})

    def test_acknowledges_and_forwards(self, hub):
        received = []
        hub.register(received.append)
        client = MagicMock()

        build_socket_mode_listener(hub)(client, self._request())

        response = client.send_socket_mode_response.call_args.args[0]
        assert response.envelope_id == "env-1"
        assert received[0]["text"] == "Happy to chat!"

    def test_non_message_events_acknowledged_only(self, hub):
        received = []
        hub.register(received.append)
        client = MagicMock()

        build_socket_mode_listener(hub)(client, self._request(event={"type": "reaction_added", "channel": "#recruiter"}))

        client.send_socket_mode_response.assert_called_once()
        assert received == []

    def test_other_request_types_ignored(self, hub):
        client = MagicMock()
        build_socket_mode_listener(hub)(client, self._request(req_type="slash_commands"))
        client.send_socket_mode_response.assert_not_called()
