"""Best-effort delivery of visitor messages to a Slack incoming webhook.

One POST per message, no retry and no queue: a lost notification is an
accepted failure mode. Callers get True/False and decide what to show the
visitor.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import requests

from career_assistant.config import settings

logger = logging.getLogger(__name__)

SlackMessage = Dict[str, Any]

# Slack rejects section text longer than 3000 characters
SECTION_TEXT_LIMIT = 2900


class NotificationSink(Protocol):
    def send(self, message: SlackMessage, channel: Optional[str] = None) -> bool:
        ...


class SlackNotificationRelay:
    """NotificationSink that posts block-kit payloads to an incoming webhook."""

    def __init__(self, webhook_url: str, timeout: float = settings.SLACK_TIMEOUT_SECONDS, session=None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session or requests

    def send(self, message: SlackMessage, channel: Optional[str] = None) -> bool:
        payload = dict(message)
        if channel:
            payload["channel"] = channel

        try:
            response = self.session.post(self.webhook_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Failed to send to Slack: {e}")
            return False

        if not 200 <= response.status_code < 300:
            logger.error(f"Failed to send to Slack: {response.status_code} {response.reason}")
            return False

        logger.info(f"Slack notification delivered ({len(payload.get('blocks', []))} blocks)")
        return True


# ============================================================================
# Block-kit builders
# ============================================================================

def _header(text: str) -> Dict[str, Any]:
    return {"type": "header", "text": {"type": "plain_text", "text": text}}


def _mrkdwn(text: str) -> Dict[str, Any]:
    return {"type": "mrkdwn", "text": text}


def _context(text: str) -> Dict[str, Any]:
    return {"type": "context", "elements": [_mrkdwn(text)]}


def _fallback_text(blocks: List[Dict[str, Any]]) -> str:
    """Plain 'text' for notifications and clients that cannot render blocks."""
    for block in blocks:
        if block.get("type") == "header":
            return block["text"]["text"]
    return "New message"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _truncate(text: str, limit: int = SECTION_TEXT_LIMIT) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def build_contact_message(name: str, email: str, message: str, sent_at: Optional[datetime] = None) -> SlackMessage:
    sent_at = sent_at or _now()
    blocks = [
        _header("🚀 New Contact Form Message"),
        {"type": "section", "fields": [_mrkdwn(f"*Name:*\n{name}"), _mrkdwn(f"*Email:*\n{email}")]},
        {"type": "section", "text": _mrkdwn(_truncate(f"*Message:*\n{message}"))},
        _context(f"Sent from {settings.SITE_NAME} • {sent_at:%Y-%m-%d %H:%M:%S} UTC"),
        {
            "type": "actions",
            "elements": [{
                "type": "button",
                "text": {"type": "plain_text", "text": "Reply via Email"},
                "url": f"mailto:{email}?subject=Re: Your message from {settings.SITE_NAME}",
                "style": "primary",
            }],
        },
    ]
    return {"text": _fallback_text(blocks), "blocks": blocks}


def build_live_chat_message(
    user_name: str,
    message: str,
    sent_at: Optional[datetime] = None,
    is_interview_handoff: bool = False,
) -> SlackMessage:
    sent_at = sent_at or _now()
    title = "🔥 Qualified Candidate - AI Interview Hand-off" if is_interview_handoff else "💬 Live Chat Message"
    quoted = _truncate(message if is_interview_handoff else f"> {message}")
    blocks = [
        _header(title),
        {"type": "section", "fields": [_mrkdwn(f"*Visitor:*\n{user_name}"), _mrkdwn(f"*Time:*\n{sent_at:%H:%M:%S} UTC")]},
        {"type": "section", "text": _mrkdwn(f"*Message:*\n{quoted}")},
        _context(f"🌐 Live from {settings.SITE_NAME} • Real-time chat session"),
    ]
    return {"text": _fallback_text(blocks), "blocks": blocks}


def build_slack_dm_message(name: str, message: str, sent_at: Optional[datetime] = None) -> SlackMessage:
    sent_at = sent_at or _now()
    blocks = [
        _header("💬 New Slack DM"),
        {"type": "section", "text": _mrkdwn(_truncate(f"*From:* {name}\n*Message:* {message}"))},
        _context(f"Sent from {settings.SITE_NAME} • {sent_at:%Y-%m-%d %H:%M:%S} UTC"),
    ]
    return {"text": _fallback_text(blocks), "blocks": blocks}


def build_socket_chat_message(
    user_name: Optional[str],
    connection_id: str,
    message: str,
    sent_at: Optional[datetime] = None,
) -> SlackMessage:
    """Live relay variant: identifies the websocket so replies can be traced."""
    sent_at = sent_at or _now()
    blocks = [
        _header("💬 Live Chat Message"),
        {"type": "section", "fields": [
            _mrkdwn(f"*Visitor:* {user_name or 'Anonymous'}"),
            _mrkdwn(f"*Connection:* {connection_id}"),
        ]},
        {"type": "section", "text": _mrkdwn(_truncate(f"*Message:*\n> {message}"))},
        _context(f"🌐 Live from {settings.SITE_NAME} • {sent_at:%Y-%m-%d %H:%M:%S} UTC"),
    ]
    return {"text": _fallback_text(blocks), "blocks": blocks}
