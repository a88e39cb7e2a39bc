"""Completion gateway: the server side of the career assistant.

Stateless request handler. Every call receives the utterance, the transcript
so far and the browser telemetry it needs, and returns a status code plus a
JSON body. Nothing is kept between calls, so concurrent sessions need no
locking.

Pipeline for an ordinary message:
1. check configuration (no network call is attempted without an API key)
2. collect visitor signals (geo lookup failures are absorbed)
3. classify visitor
4. compose the system prompt
5. forward transcript + utterance to the completion provider, once
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from career_assistant.config import settings
from career_assistant.core.completion_provider import CompletionProvider, UpstreamError
from career_assistant.core.prompt_composer import compose
from career_assistant.core.recruiter_classifier import classify
from career_assistant.prompts import Biography, load_biography
from career_assistant.signals.geo_lookup import GeoLookupProvider
from career_assistant.signals.visitor_signals import collect_signals
from career_assistant.state.conversation_state import ClassificationResult, utc_now

logger = logging.getLogger(__name__)

WELCOME_SENTINEL = "__WELCOME_MESSAGE__"
VISITOR_INFO_SENTINEL = "__GET_VISITOR_INFO__"

RECRUITER_GREETING = (
    f"👋 Welcome! It looks like you might be exploring talent. I'm {settings.OWNER_NAME}'s AI career assistant - "
    "ask me about his leadership experience, technical depth, or what he's looking for in his "
    "next role, and I can help you connect with him directly."
)
VISITOR_GREETING = (
    f"Hi! I'm {settings.OWNER_NAME}'s AI career assistant. Ask me anything about his experience, skills, projects, "
    "or background. I'm here to help you learn more about his professional journey!"
)

SERVICE_UNAVAILABLE_ERROR = "AI service temporarily unavailable"
GENERIC_FAILURE_ERROR = "AI assistant temporarily unavailable. Please try again later."
EMPTY_MESSAGE_ERROR = "Message is required"

_USER_ROLES = {"user", "human"}
_ASSISTANT_ROLES = {"assistant", "ai"}


@dataclass(frozen=True)
class GatewayResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


def build_message_history(
    message_history: Optional[Sequence[Mapping[str, Any]]],
    message: str,
    max_turns: int = settings.MAX_HISTORY_TURNS,
) -> List[Dict[str, str]]:
    """Convert the client transcript into alternating Messages API turns.

    System and transition turns are display-only and are dropped. Consecutive
    turns from the same side are merged, leading assistant turns are removed
    (the API requires a user turn first) and the current utterance always
    ends the list exactly once.
    """
    turns: List[Dict[str, str]] = []
    for entry in message_history or []:
        role = str(entry.get("role") or entry.get("type") or "").lower()
        content = entry.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        if role in _USER_ROLES:
            role = "user"
        elif role in _ASSISTANT_ROLES:
            role = "assistant"
        else:
            continue

        if turns and turns[-1]["role"] == role:
            turns[-1] = {"role": role, "content": f"{turns[-1]['content']}\n\n{content}"}
        else:
            turns.append({"role": role, "content": content})

    # The client appends the new user turn before calling; don't send it twice.
    if turns and turns[-1]["role"] == "user" and turns[-1]["content"].strip() == message.strip():
        turns.pop()

    turns = turns[-max_turns:] if max_turns > 0 else []
    while turns and turns[0]["role"] != "user":
        turns.pop(0)

    if turns and turns[-1]["role"] == "user":
        turns[-1] = {"role": "user", "content": f"{turns[-1]['content']}\n\n{message}"}
    else:
        turns.append({"role": "user", "content": message})
    return turns


def welcome_message(classification: ClassificationResult) -> str:
    return RECRUITER_GREETING if classification.is_likely_recruiter else VISITOR_GREETING


class CompletionGateway:
    """Handles one completion-endpoint request at a time, keeping no state.

    Args:
        completion_provider: Provider for the external completion call, or None
            when the API key is not configured
        geo_lookup: IP -> organization provider (None skips enrichment)
        biography: Base prompt document; loaded from settings when omitted
        clock: Source of the request timestamp
    """

    def __init__(
        self,
        completion_provider: Optional[CompletionProvider],
        geo_lookup: Optional[GeoLookupProvider] = None,
        biography: Optional[Biography] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.completion_provider = completion_provider
        self.geo_lookup = geo_lookup
        self.biography = biography
        self.clock = clock

    def _classify(self, headers, browser_data, client_host) -> ClassificationResult:
        try:
            signals = collect_signals(
                headers,
                browser_data=browser_data,
                client_host=client_host,
                geo_lookup=self.geo_lookup,
                request_time=self.clock(),
            )
            classification = classify(signals)
        except Exception:
            # Unclassified visitor rather than a failed request
            logger.exception("Visitor classification failed; treating visitor as unclassified")
            return ClassificationResult.from_score(0)
        logger.info(
            f"Visitor classification: score={classification.score} "
            f"recruiter={classification.is_likely_recruiter} "
            f"tags={sorted(classification.matched_signal_tags)}"
        )
        return classification

    def handle(
        self,
        message: str,
        headers: Mapping[str, str],
        browser_data: Optional[Mapping[str, Any]] = None,
        message_history: Optional[Sequence[Mapping[str, Any]]] = None,
        client_host: Optional[str] = None,
    ) -> GatewayResponse:
        if message == WELCOME_SENTINEL:
            classification = self._classify(headers, browser_data, client_host)
            return GatewayResponse(200, {
                "message": welcome_message(classification),
                "isLikelyRecruiter": classification.is_likely_recruiter,
            })

        if message == VISITOR_INFO_SENTINEL:
            classification = self._classify(headers, browser_data, client_host)
            return GatewayResponse(200, {"visitorInfo": classification.to_visitor_info()})

        if not isinstance(message, str) or not message.strip():
            return GatewayResponse(400, {"error": EMPTY_MESSAGE_ERROR})

        if self.completion_provider is None:
            logger.error("Completion request rejected: API key is not configured")
            return GatewayResponse(500, {"error": SERVICE_UNAVAILABLE_ERROR})

        try:
            classification = self._classify(headers, browser_data, client_host)
            system_prompt = compose(self.biography or load_biography(), classification)
            messages = build_message_history(message_history, message)
            result = self.completion_provider.complete(system_prompt, messages)
        except UpstreamError as e:
            logger.error(f"Upstream completion failure: status={e.status_code} detail={e.detail[:300]}")
            return GatewayResponse(e.status_code, {"error": f"AI service error: {e.status_code}"})
        except Exception:
            logger.exception("Completion gateway failure")
            return GatewayResponse(500, {"error": GENERIC_FAILURE_ERROR})

        return GatewayResponse(200, {
            "message": result.text,
            "id": result.id,
            "usage": result.usage,
        })
