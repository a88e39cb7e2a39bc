"""System prompt composition.

Merges the static biography with what the classifier inferred about the
visitor. Deterministic string building only; regenerated on every request
because message count and session duration change the classification from
turn to turn.
"""

from __future__ import annotations

import re
from textwrap import dedent

from career_assistant.config import settings
from career_assistant.prompts import Biography
from career_assistant.state.conversation_state import ClassificationResult

# ============================================================================
# Audience detection
# ============================================================================

AUDIENCE_RECRUITING = "recruiting"
AUDIENCE_TECH = "tech"
AUDIENCE_STARTUP = "startup"
AUDIENCE_GENERAL = "general"

_TECH_COMPANY_RE = re.compile(
    r"software|technolog|\btech\b|systems|cloud|data|digital|computing|"
    r"\bai\b|networks|semiconductor|google|microsoft|amazon|apple|meta platforms|"
    r"salesforce|oracle|ibm|adobe|github|atlassian|netflix|nvidia|intel|cisco",
    re.IGNORECASE,
)
_STARTUP_RE = re.compile(r"startup|start-up|ventures|labs\b|\bio\b|studio|incubator|accelerator", re.IGNORECASE)

_TONE_INSTRUCTIONS = {
    AUDIENCE_RECRUITING: (
        "This visitor appears to be from a recruiting, staffing or HR organization. "
        "Lead with leadership, team building, scope of ownership and career trajectory."
    ),
    AUDIENCE_TECH: (
        "This visitor appears to be from a technology company. "
        "Be more technical: architecture decisions, stack depth and engineering trade-offs."
    ),
    AUDIENCE_STARTUP: (
        "This visitor appears to be from a startup. "
        "Focus on growth: shipping fast, wearing many hats and scaling platforms and teams."
    ),
    AUDIENCE_GENERAL: (
        "Adjust your tone to the visitor: more technical for tech companies, "
        "leadership-focused for HR/recruiting contacts, growth-focused for startups."
    ),
}


def detect_audience(classification: ClassificationResult) -> str:
    if "recruiting_organization" in classification.matched_signal_tags:
        return AUDIENCE_RECRUITING
    company = classification.company or ""
    if _TECH_COMPANY_RE.search(company):
        return AUDIENCE_TECH
    if _STARTUP_RE.search(company):
        return AUDIENCE_STARTUP
    return AUDIENCE_GENERAL


def _visitor_context_block(classification: ClassificationResult) -> str:
    lines = ["**VISITOR CONTEXT:**"]
    if classification.company:
        lines.append(f"- The visitor appears to be browsing from: {classification.company}")
    if classification.location:
        lines.append(f"- Approximate location: {classification.location}")
    lines.append(f"- {_TONE_INSTRUCTIONS[detect_audience(classification)]}")
    lines.append("- Never tell the visitor how you inferred their company or location.")
    return "\n".join(lines)


def _recruiter_block() -> str:
    return dedent(f"""\
        **LIKELY RECRUITER:**
        - This visitor is probably evaluating {settings.OWNER_NAME} for a role.
        - Be concise, highlight impact and seniority, and mention that {settings.OWNER_NAME} is open to a conversation at {settings.OWNER_EMAIL}.""")


def compose(biography: Biography, classification: ClassificationResult) -> str:
    """Build the system prompt for one completion request.

    Args:
        biography: Static biography document (base prompt)
        classification: Result for the current request's signals

    Returns:
        Biography text, plus a visitor-context block only when the classifier
        found company or location info, plus a recruiter note for likely
        recruiters.
    """
    sections = [biography.text.strip()]
    if classification.has_company_info:
        sections.append(_visitor_context_block(classification))
    if classification.is_likely_recruiter:
        sections.append(_recruiter_block())
    return "\n\n".join(sections)
