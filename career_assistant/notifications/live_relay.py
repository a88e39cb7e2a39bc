"""Two-way live chat between website visitors and the owner's Slack channel.

Visitor -> owner: messages arriving on a website websocket are posted to the
channel with the bot token. Owner -> visitor: Slack Socket Mode pushes channel
messages back, and they are broadcast to every open website connection.

The hub knows nothing about websockets. Each connection registers a plain
``send(payload)`` callable, so the FastAPI route (or a test) decides how a
payload reaches the browser. Slack events arrive on the Socket Mode thread,
so the registry is guarded by a lock.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Set

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
from slack_sdk.socket_mode import SocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse

from career_assistant.config import settings
from career_assistant.notifications.slack_relay import build_socket_chat_message
from career_assistant.state.conversation_state import utc_now

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]
Sender = Callable[[Payload], None]


class LiveChatHub:
    """Connection registry plus the Slack side of the live relay.

    Args:
        web_client: slack_sdk WebClient authorised with the bot token
        channel: Channel name or id visitor messages are posted to
        clock: Timestamp source for the Slack context line
    """

    def __init__(self, web_client: WebClient, channel: Optional[str] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.web_client = web_client
        self.channel = channel or settings.get_slack_channel()
        self.clock = clock
        self._connections: Dict[str, Sender] = {}
        self._channel_ids: Set[str] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Website connections
    # ------------------------------------------------------------------

    def register(self, send: Sender) -> str:
        connection_id = uuid.uuid4().hex
        with self._lock:
            self._connections[connection_id] = send
        logger.info(f"Website client connected: {connection_id}")
        return connection_id

    def unregister(self, connection_id: str) -> None:
        with self._lock:
            removed = self._connections.pop(connection_id, None)
        if removed is not None:
            logger.info(f"Website client disconnected: {connection_id}")

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def connection_payload(self, connection_id: str) -> Payload:
        return {
            "type": "connection",
            "status": "connected",
            "connectionId": connection_id,
            "ownerOnline": True,
        }

    def handle_client_message(self, connection_id: str, data: Mapping[str, Any]) -> Optional[Payload]:
        """Act on one website frame; returns the reply for that connection, if any."""
        kind = data.get("type")
        if kind == "chat_message":
            return self._post_chat_message(connection_id, data)
        if kind == "typing_start":
            self._post_typing(data)
            return None
        if kind == "typing_stop":
            return None
        logger.debug(f"Ignoring website frame of type {kind!r}")
        return None

    def _post_chat_message(self, connection_id: str, data: Mapping[str, Any]) -> Optional[Payload]:
        text = data.get("text")
        if not isinstance(text, str) or not text.strip():
            logger.debug("Ignoring empty live chat message")
            return None

        user_name = data.get("userName") if isinstance(data.get("userName"), str) else None
        message = build_socket_chat_message(user_name, connection_id, text, sent_at=self.clock())
        try:
            result = self.web_client.chat_postMessage(
                channel=self.channel, blocks=message["blocks"], text=message["text"]
            )
        except SlackApiError as e:
            logger.error(f"Error sending live chat message to Slack: {e.response.get('error')}")
            return None

        channel_id = result.get("channel")
        if channel_id:
            with self._lock:
                self._channel_ids.add(channel_id)
        logger.info(f"Live chat message posted to Slack: ts={result.get('ts')}")
        return {
            "type": "message_received",
            "messageId": data.get("id"),
            "slackTimestamp": result.get("ts"),
        }

    def _post_typing(self, data: Mapping[str, Any]) -> None:
        name = data.get("userName")
        if not isinstance(name, str) or not name.strip():
            name = "Someone"
        kwargs: Dict[str, Any] = {"channel": self.channel, "text": f"💭 {name} is typing on the website..."}
        if data.get("threadTs"):
            kwargs["thread_ts"] = data["threadTs"]
        try:
            self.web_client.chat_postMessage(**kwargs)
        except SlackApiError as e:
            logger.error(f"Error sending typing notification: {e.response.get('error')}")

    # ------------------------------------------------------------------
    # Slack -> website
    # ------------------------------------------------------------------

    def _watches(self, channel: Optional[str]) -> bool:
        if not channel:
            return False
        with self._lock:
            return channel == self.channel or channel in self._channel_ids

    def handle_slack_event(self, event: Mapping[str, Any]) -> int:
        """Broadcast an owner message to every website connection.

        Returns the number of connections it was delivered to.
        """
        if not self._watches(event.get("channel")):
            return 0
        if event.get("bot_id") or event.get("subtype"):
            return 0

        ts = event.get("ts")
        try:
            sent_at = datetime.fromtimestamp(float(ts), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            logger.warning(f"Slack event without a usable timestamp: {ts!r}")
            return 0

        payload = {
            "type": "slack_message",
            "id": ts,
            "text": event.get("text", ""),
            "sender": "owner",
            "senderName": self._sender_name(event.get("user")),
            "timestamp": sent_at.isoformat(),
            "threadTs": event.get("thread_ts"),
        }

        with self._lock:
            connections = list(self._connections.items())

        delivered = 0
        for connection_id, send in connections:
            try:
                send(payload)
            except Exception as e:
                logger.warning(f"Could not forward Slack message to {connection_id}: {e}")
                continue
            delivered += 1
        logger.info(f"Forwarded Slack message to {delivered}/{len(connections)} website clients")
        return delivered

    def _sender_name(self, user_id: Optional[str]) -> str:
        if not user_id:
            return settings.OWNER_NAME
        try:
            user = self.web_client.users_info(user=user_id).get("user") or {}
        except SlackApiError:
            logger.info("Could not get Slack user info, using default name")
            return settings.OWNER_NAME
        return user.get("real_name") or user.get("name") or settings.OWNER_NAME


# ============================================================================
# Socket Mode
# ============================================================================

def build_socket_mode_listener(hub: LiveChatHub) -> Callable[[SocketModeClient, SocketModeRequest], None]:
    """Acknowledge every events_api envelope and forward channel messages."""

    def process(client: SocketModeClient, req: SocketModeRequest) -> None:
        if req.type != "events_api":
            return
        client.send_socket_mode_response(SocketModeResponse(envelope_id=req.envelope_id))

        event = (req.payload or {}).get("event") or {}
        if event.get("type") == "message":
            hub.handle_slack_event(event)

    return process


def start_socket_mode(hub: LiveChatHub, app_token: str, web_client: Optional[WebClient] = None) -> SocketModeClient:
    client = SocketModeClient(app_token=app_token, web_client=web_client or hub.web_client)
    client.socket_mode_request_listeners.append(build_socket_mode_listener(hub))
    client.connect()
    logger.info(f"Connected to Slack Socket Mode; relaying channel {hub.channel}")
    return client
