"""Backends the conversation session talks to.

``HttpAssistantBackend`` calls the deployed API over HTTP (what the browser
widget does). ``InProcessAssistantBackend`` drives the gateway and relay
directly, which is what the terminal client uses when no API URL is set.
Both raise BackendError for anything the session should treat as a failed
request.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

import requests

from career_assistant.core.completion_gateway import CompletionGateway
from career_assistant.flows.handoff_evaluator import handoff_payload
from career_assistant.notifications.slack_relay import NotificationSink, build_live_chat_message
from career_assistant.state.conversation_state import CandidateHandoff, utc_now

logger = logging.getLogger(__name__)

COMPLETION_PATH = "/api/claude"
CHAT_PATH = "/api/chat"


class BackendError(RuntimeError):
    """A completion or hand-off request did not succeed."""


class AssistantBackend(Protocol):
    def complete(self, message: str, history: List[Dict[str, str]], browser_data: Dict[str, Any]) -> str:
        ...

    def send_handoff(self, handoff: CandidateHandoff) -> None:
        ...


class HttpAssistantBackend:
    """AssistantBackend over HTTP.

    No explicit deadline is enforced: ``timeout`` defaults to None, i.e. the
    HTTP client's own behaviour.
    """

    def __init__(self, base_url: str, timeout: Optional[float] = None, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise BackendError(f"Request to {path} failed: {e}") from e

        if not response.ok:
            raise BackendError(f"HTTP error! status: {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Malformed response from {path}") from e

    def complete(self, message: str, history: List[Dict[str, str]], browser_data: Dict[str, Any]) -> str:
        data = self._post(COMPLETION_PATH, {
            "message": message,
            "messageHistory": history,
            "browserData": browser_data,
        })
        text = data.get("message") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise BackendError("Completion response had no message")
        return text

    def send_handoff(self, handoff: CandidateHandoff) -> None:
        self._post(CHAT_PATH, handoff_payload(handoff, utc_now()))


class InProcessAssistantBackend:
    """AssistantBackend that calls the gateway and relay in this process."""

    def __init__(
        self,
        gateway: CompletionGateway,
        relay: Optional[NotificationSink] = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.gateway = gateway
        self.relay = relay
        self.headers = dict(headers or {})

    def complete(self, message: str, history: List[Dict[str, str]], browser_data: Dict[str, Any]) -> str:
        result = self.gateway.handle(
            message,
            headers=self.headers,
            browser_data=browser_data,
            message_history=history,
        )
        if result.status_code != 200:
            raise BackendError(result.body.get("error", f"status {result.status_code}"))
        return result.body.get("message", "")

    def send_handoff(self, handoff: CandidateHandoff) -> None:
        if self.relay is None:
            raise BackendError("Notification relay is not configured")
        payload = handoff_payload(handoff, utc_now())
        message = build_live_chat_message(
            str(payload["userName"]),
            str(payload["message"]),
            is_interview_handoff=True,
        )
        if not self.relay.send(message):
            raise BackendError("Failed to notify owner")
