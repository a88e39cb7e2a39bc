"""Interview qualification and hand-off helpers.

``evaluate`` is a pure fold over the transcript: it is re-run from scratch
after every assistant turn, so calling it twice on the same transcript gives
the same answer and there is no accumulator to drift.

Scoring:
    Every keyword from every category that appears in a user turn is worth one
    point, per turn. Repeats across turns all count.

Qualification:
    at least 3 user turns AND cumulative score >= 5
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from career_assistant.config import settings
from career_assistant.state.conversation_state import (
    CandidateHandoff,
    ConversationTurn,
    InterviewProgress,
    TurnRole,
)

ANALYSIS_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "experience": ("years", "experience", "worked", "developed", "built", "led", "managed"),
    "skills": ("javascript", "react", "python", "aws", "api", "database", "typescript", "node"),
    "seniority": ("senior", "lead", "architect", "principal", "manager", "director"),
    "recruiting_intent": ("hire", "recruit", "opportunity", "position", "role", "job", "career"),
}

MIN_USER_TURNS = 3
MIN_SCORE = 5

# First self-introduction wins; no validation of what follows.
NAME_PATTERN = re.compile(r"(?:i'm|my name is|i am|call me)\s+([a-zA-Z\s]+)", re.IGNORECASE)

EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.[A-Za-z]{2,}")

SUMMARY_PREVIEW_CHARS = 200


def score_response(text: str) -> int:
    lowered = text.lower()
    return sum(
        1
        for keywords in ANALYSIS_KEYWORDS.values()
        for keyword in keywords
        if keyword in lowered
    )


def extract_name(user_responses: Sequence[str]) -> Optional[str]:
    for response in user_responses:
        match = NAME_PATTERN.search(response)
        if match:
            name = match.group(1).strip()
            if name:
                return name
    return None


def user_responses(transcript: Sequence[ConversationTurn]) -> Tuple[str, ...]:
    return tuple(turn.text for turn in transcript if turn.role == TurnRole.USER)


def evaluate(transcript: Sequence[ConversationTurn]) -> InterviewProgress:
    """Recompute interview progress from the full transcript."""
    responses = user_responses(transcript)
    score = sum(score_response(response) for response in responses)
    return InterviewProgress(
        collected_user_responses=responses,
        cumulative_score=score,
        qualified=len(responses) >= MIN_USER_TURNS and score >= MIN_SCORE,
        extracted_name=extract_name(responses),
    )


def build_transition_text(progress: InterviewProgress) -> str:
    name_line = f"Name: {progress.extracted_name}" if progress.extracted_name else "Qualified candidate"
    return (
        "🎉 Great conversation! Based on our chat, I think you'd be a fantastic fit for "
        f"{settings.OWNER_NAME}'s network.\n\n"
        "**Interview Summary:**\n"
        f"• {progress.response_count} thoughtful responses\n"
        f"• Qualification Score: {progress.cumulative_score}/10\n"
        f"• {name_line}\n\n"
        f"I'd like to connect you directly with {settings.OWNER_NAME} for real-time discussion. "
        "Would you like to switch to live chat? He typically responds within minutes!"
    )


def is_plausible_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.fullmatch((email or "").strip()))


def validate_contact_details(name: str, email: str) -> List[str]:
    """Return human readable problems with the contact form; empty when valid."""
    errors = []
    if not (name or "").strip():
        errors.append("Please enter your name.")
    if not (email or "").strip():
        errors.append("Please enter your email.")
    elif not is_plausible_email(email):
        errors.append("Please enter a valid email address.")
    return errors


def format_handoff_message(handoff: CandidateHandoff) -> str:
    """Hand-off notification text: candidate details, summary and transcript."""
    progress = handoff.progress
    experience = progress.experience_summary
    if len(experience) > SUMMARY_PREVIEW_CHARS:
        experience = experience[:SUMMARY_PREVIEW_CHARS] + "..."

    transcript_lines = []
    for turn in handoff.transcript_snapshot:
        if turn.role == TurnRole.USER:
            transcript_lines.append(f"👤 Candidate: {turn.text}")
        elif turn.role == TurnRole.ASSISTANT:
            transcript_lines.append(f"🤖 AI: {turn.text}")

    return (
        "🔥 QUALIFIED CANDIDATE READY FOR LIVE CHAT\n\n"
        f"**Candidate:** {handoff.name}\n"
        f"**Email:** {handoff.email}\n"
        f"**Company:** {handoff.company or 'Not specified'}\n\n"
        "**AI Interview Summary:**\n"
        f"• Score: {progress.cumulative_score}/10 ✨\n"
        f"• Responses: {progress.response_count}\n"
        f"• Key Skills/Experience: {experience}\n\n"
        "**Full Interview Transcript:**\n"
        + "\n\n".join(transcript_lines)
        + "\n\n🚀 Candidate is requesting live chat transition!"
    )


def build_handoff(
    name: str,
    email: str,
    company: str,
    transcript: Sequence[ConversationTurn],
) -> CandidateHandoff:
    return CandidateHandoff(
        name=name.strip(),
        email=email.strip(),
        company=(company or "").strip(),
        transcript_snapshot=tuple(transcript),
        progress=evaluate(transcript),
    )


def handoff_payload(handoff: CandidateHandoff, sent_at: datetime) -> Dict[str, object]:
    """Body for POST /api/chat announcing the hand-off."""
    return {
        "message": format_handoff_message(handoff),
        "userName": handoff.name,
        "timestamp": sent_at.isoformat(),
        "isInterviewHandoff": True,
    }
