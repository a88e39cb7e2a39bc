"""Conversation and visitor data structures.

This module defines the records passed between the classifier, the prompt
composer, the completion gateway and the client-side conversation session.
Everything here is owned by a single browser/terminal session or a single
HTTP request; nothing is shared across sessions or persisted.

Architecture:
    Request side:  VisitorSignals -> ClassificationResult (recomputed per request)
    Session side:  ConversationTurn* -> InterviewProgress -> CandidateHandoff

The session keeps one enum per orthogonal concern (network, speech input,
speech output, hand-off) rather than a handful of independent booleans, so
combinations like "loading and idle at once" cannot be represented.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


RECRUITER_THRESHOLD = 30
"""Score at or above which a visitor is treated as a likely recruiter."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Visitor classification (request side)
# ============================================================================

@dataclass(frozen=True)
class VisitorSignals:
    """Everything known about the visitor for one request.

    Built by the signal collector from HTTP headers, the IP lookup and the
    client-supplied browserData. Discarded when the response completes.
    """
    request_time: datetime
    """Aware timestamp captured when the request arrived."""

    source_ip: Optional[str] = None
    source_organization: Optional[str] = None
    """Network owner reported by the IP lookup (e.g. 'AS15169 Google LLC')."""

    source_location: Optional[str] = None
    """Human readable 'City, Region, Country' from the IP lookup."""

    referrer_url: str = ""
    user_agent: str = ""
    timezone: str = ""
    """IANA timezone reported by the browser (e.g. 'America/New_York')."""

    screen_resolution: str = ""
    """'<width>x<height>' as reported by the browser."""

    session_start_time: Optional[datetime] = None
    message_count_so_far: int = 0

    @property
    def session_duration_seconds(self) -> float:
        if self.session_start_time is None:
            return 0.0
        return max(0.0, (self.request_time - self.session_start_time).total_seconds())


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of scoring one VisitorSignals instance.

    Invariant: is_likely_recruiter == (score >= RECRUITER_THRESHOLD).
    Build through ``from_score`` so the invariant cannot drift.
    """
    score: int
    is_likely_recruiter: bool
    matched_signal_tags: FrozenSet[str] = frozenset()
    company: Optional[str] = None
    location: Optional[str] = None

    @classmethod
    def from_score(
        cls,
        score: int,
        tags: FrozenSet[str] = frozenset(),
        company: Optional[str] = None,
        location: Optional[str] = None,
    ) -> "ClassificationResult":
        return cls(
            score=score,
            is_likely_recruiter=score >= RECRUITER_THRESHOLD,
            matched_signal_tags=frozenset(tags),
            company=company,
            location=location,
        )

    @property
    def has_company_info(self) -> bool:
        return bool(self.company or self.location)

    def to_visitor_info(self) -> Dict[str, Any]:
        """Shape returned by the visitor-info sentinel."""
        return {
            "company": self.company,
            "location": self.location,
            "isLikelyRecruiter": self.is_likely_recruiter,
            "score": self.score,
            "signals": sorted(self.matched_signal_tags),
        }


# ============================================================================
# Conversation transcript (session side)
# ============================================================================

class TurnRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TRANSITION = "transition"


@dataclass(frozen=True)
class ConversationTurn:
    """One entry in the append-only transcript.

    Insertion order is semantic: it is the order shown to the visitor and the
    order forwarded to the completion service as context.
    """
    role: TurnRole
    text: str
    id: str = ""
    created_at: datetime = field(default_factory=utc_now)
    via_voice: bool = False
    """True for user turns captured through speech recognition."""

    metadata: Optional[Dict[str, Any]] = None
    """Transition turns carry interview_score, qualified and candidate_profile."""

    def __post_init__(self):
        if not self.id:
            object.__setattr__(self, "id", f"{self.role.value}_{uuid.uuid4().hex[:8]}")

    def to_payload(self) -> Dict[str, str]:
        """Shape sent to the completion endpoint as messageHistory."""
        return {"type": self.role.value, "content": self.text}


@dataclass(frozen=True)
class InterviewProgress:
    """Result of re-scanning the full transcript after an assistant turn."""
    collected_user_responses: Tuple[str, ...] = ()
    cumulative_score: int = 0
    qualified: bool = False
    extracted_name: Optional[str] = None

    @property
    def response_count(self) -> int:
        return len(self.collected_user_responses)

    @property
    def experience_summary(self) -> str:
        return " ".join(self.collected_user_responses)

    def to_profile(self) -> Dict[str, Any]:
        return {
            "responses": list(self.collected_user_responses),
            "score": self.cumulative_score,
            "qualified": self.qualified,
            "candidate_name": self.extracted_name,
            "experience": self.experience_summary,
        }


@dataclass(frozen=True)
class CandidateHandoff:
    """Contact details plus transcript, created once the interview qualifies."""
    name: str
    email: str
    company: str
    transcript_snapshot: Tuple[ConversationTurn, ...]
    progress: InterviewProgress


# ============================================================================
# Session state machine
# ============================================================================

class NetworkState(str, Enum):
    INITIALIZING = "initializing"
    AWAITING_INPUT = "awaiting_input"
    AWAITING_COMPLETION = "awaiting_completion"
    DISPLAYING = "displaying"


class VoiceInputState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    TRANSCRIPT_READY = "transcript_ready"


class SpeechOutputState(str, Enum):
    IDLE = "idle"
    SPEAKING = "speaking"


class HandoffState(str, Enum):
    NONE = "none"
    OFFERED = "offered"
    SUBMITTED = "submitted"
    ABANDONED = "abandoned"
