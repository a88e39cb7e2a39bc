"""Recruiter classification for website visitors.

Additive point system over the signals collected for one request. Source
signals (where the visitor came from and whose network they are on) carry
most of the weight; corroborating signals (engagement, hardware, time of day,
user-agent) add up to just under the threshold, so on their own they never
tip a visitor into "likely recruiter".

The function is pure: the request timestamp travels inside VisitorSignals, so
the same signals always produce the same ClassificationResult.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Optional, Set
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from career_assistant.config import settings
from career_assistant.state.conversation_state import (
    RECRUITER_THRESHOLD,
    ClassificationResult,
    VisitorSignals,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Point values
# ============================================================================

PROFESSIONAL_NETWORK_POINTS = 40
JOB_BOARD_POINTS = 35
RECRUITING_ORG_POINTS = 30
CORPORATE_NETWORK_POINTS = 10
ENGAGED_CONVERSATION_POINTS = 15
BUSINESS_TIMEZONE_POINTS = 8
PROFESSIONAL_DISPLAY_POINTS = 5
LONG_SESSION_POINTS = 10
BUSINESS_HOURS_POINTS = 5
RECRUITING_AGENT_POINTS = 20

CORROBORATING_CAP = RECRUITER_THRESHOLD - 1

ENGAGED_MESSAGE_COUNT = 3
LONG_SESSION_SECONDS = 5 * 60
BUSINESS_HOURS = (9, 17)
PROFESSIONAL_MIN_WIDTH = 1680

# ============================================================================
# Vocabulary
# ============================================================================

PROFESSIONAL_NETWORK_DOMAINS = ("linkedin.com", "lnkd.in", "xing.com")

JOB_BOARD_DOMAINS = (
    "indeed.com", "glassdoor.com", "ziprecruiter.com", "monster.com",
    "dice.com", "wellfound.com", "angel.co", "hired.com", "builtin.com",
    "greenhouse.io", "lever.co", "workable.com", "smartrecruiters.com",
    "careerbuilder.com", "simplyhired.com", "otta.com",
)

_RECRUITING_ORG_RE = re.compile(
    r"recruit|staffing|talent|headhunt|human resources|\bhr\b|personnel|"
    r"executive search|search partners|placement|employment agency|"
    r"robert half|randstad|adecco|manpower|kforce|teksystems|insight global|"
    r"aerotek|hays\b|michael page|korn ferry|heidrick",
    re.IGNORECASE,
)

CONSUMER_ISP_FRAGMENTS = (
    "comcast", "xfinity", "verizon", "at&t", "att services", "att-internet",
    "spectrum", "charter communications", "cox communications", "t-mobile",
    "sprint", "centurylink", "lumen", "frontier", "optimum", "altice",
    "windstream", "mediacom", "suddenlink", "earthlink", "cable one",
    "wow!", "google fiber", "starlink", "hughes", "viasat", "rogers",
    "bell canada", "shaw", "telus", "vodafone", "british telecommunications",
    "virgin media", "sky broadband", "orange", "deutsche telekom",
    "cellular", "wireless", "mobile", "broadband", "residential",
)

RECRUITING_AGENT_MARKERS = (
    "linkedinapp", "linkedin", "indeed", "glassdoor", "ziprecruiter",
    "greenhouse", "lever-", "workday", "hiretual", "seekout",
)

BUSINESS_TIMEZONES = frozenset({
    "America/New_York", "America/Chicago", "America/Denver", "America/Phoenix",
    "America/Los_Angeles", "America/Toronto", "America/Vancouver",
    "Europe/London", "Europe/Dublin", "Europe/Paris", "Europe/Berlin",
    "Europe/Amsterdam", "Europe/Zurich", "Europe/Stockholm",
    "Asia/Tokyo", "Asia/Singapore", "Asia/Hong_Kong", "Asia/Kolkata",
    "Australia/Sydney", "Australia/Melbourne",
})

_RESOLUTION_RE = re.compile(r"^\s*(\d{3,5})\s*[x×X*]\s*(\d{3,5})\s*$")


# ============================================================================
# Individual signal checks
# ============================================================================

def is_consumer_isp(organization: str) -> bool:
    lowered = organization.lower()
    return any(fragment in lowered for fragment in CONSUMER_ISP_FRAGMENTS)


def is_recruiting_organization(organization: str) -> bool:
    return bool(_RECRUITING_ORG_RE.search(organization))


def is_professional_resolution(resolution: str) -> bool:
    match = _RESOLUTION_RE.match(resolution or "")
    if not match:
        return False
    width, height = int(match.group(1)), int(match.group(2))
    return max(width, height) >= PROFESSIONAL_MIN_WIDTH


def _in_business_hours(moment: datetime) -> bool:
    start, end = BUSINESS_HOURS
    return start <= moment.hour <= end


def _local_time(moment: datetime, tz_name: str) -> Optional[datetime]:
    try:
        return moment.astimezone(ZoneInfo(tz_name))
    except (ZoneInfoNotFoundError, ValueError):
        return None


def _score_source(signals: VisitorSignals, tags: Set[str]) -> int:
    points = 0
    referrer = (signals.referrer_url or "").lower()

    if any(domain in referrer for domain in PROFESSIONAL_NETWORK_DOMAINS):
        points += PROFESSIONAL_NETWORK_POINTS
        tags.add("professional_network_referrer")
    elif any(domain in referrer for domain in JOB_BOARD_DOMAINS):
        points += JOB_BOARD_POINTS
        tags.add("job_board_referrer")

    organization = (signals.source_organization or "").strip()
    if organization:
        if is_recruiting_organization(organization):
            points += RECRUITING_ORG_POINTS
            tags.add("recruiting_organization")
        elif not is_consumer_isp(organization):
            points += CORPORATE_NETWORK_POINTS
            tags.add("corporate_network")

    return points


def _score_corroborating(signals: VisitorSignals, owner_timezone: str, tags: Set[str]) -> int:
    points = 0

    if signals.message_count_so_far > ENGAGED_MESSAGE_COUNT:
        points += ENGAGED_CONVERSATION_POINTS
        tags.add("engaged_conversation")

    if signals.timezone in BUSINESS_TIMEZONES:
        local = _local_time(signals.request_time, signals.timezone)
        if local is not None and _in_business_hours(local):
            points += BUSINESS_TIMEZONE_POINTS
            tags.add("business_timezone_hours")

    if is_professional_resolution(signals.screen_resolution):
        points += PROFESSIONAL_DISPLAY_POINTS
        tags.add("professional_display")

    if signals.session_duration_seconds > LONG_SESSION_SECONDS:
        points += LONG_SESSION_POINTS
        tags.add("long_session")

    owner_local = _local_time(signals.request_time, owner_timezone) or signals.request_time
    if _in_business_hours(owner_local):
        points += BUSINESS_HOURS_POINTS
        tags.add("business_hours")

    agent = (signals.user_agent or "").lower()
    if any(marker in agent for marker in RECRUITING_AGENT_MARKERS):
        points += RECRUITING_AGENT_POINTS
        tags.add("recruiting_platform_agent")

    return min(points, CORROBORATING_CAP)


def classify(signals: VisitorSignals, owner_timezone: Optional[str] = None) -> ClassificationResult:
    """Score a visitor and decide whether they are likely a recruiter.

    Args:
        signals: Signals collected for the current request only (not cumulative)
        owner_timezone: Timezone for the wall-clock business-hours signal;
            defaults to the OWNER_TIMEZONE setting

    Returns:
        ClassificationResult with is_likely_recruiter == (score >= 30)
    """
    tags: Set[str] = set()
    source_points = _score_source(signals, tags)
    corroborating_points = _score_corroborating(
        signals, owner_timezone or settings.get_owner_timezone(), tags
    )
    score = source_points + corroborating_points

    result = ClassificationResult.from_score(
        score,
        frozenset(tags),
        company=signals.source_organization,
        location=signals.source_location,
    )
    logger.debug(
        f"Visitor classified: score={result.score} recruiter={result.is_likely_recruiter} "
        f"tags={sorted(result.matched_signal_tags)}"
    )
    return result
