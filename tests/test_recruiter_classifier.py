"""Unit tests for the recruiter classifier.

Tests:
- Source signals (referrer, network organization)
- Corroborating signals and their cap
- Threshold invariant and determinism

Run: pytest tests/test_recruiter_classifier.py -v
"""

from datetime import timedelta

import pytest

from career_assistant.core.recruiter_classifier import (
    CORROBORATING_CAP,
    classify,
    is_consumer_isp,
    is_professional_resolution,
    is_recruiting_organization,
)
from career_assistant.state.conversation_state import RECRUITER_THRESHOLD
from conftest import BUSINESS_HOURS, OFF_HOURS, make_signals


def maxed_corroborating(request_time=OFF_HOURS, **overrides):
    fields = dict(
        timezone="America/New_York",
        screen_resolution="2560x1440",
        user_agent="Mozilla/5.0 LinkedInApp",
        session_start_time=request_time - timedelta(minutes=30),
        message_count_so_far=12,
    )
    fields.update(overrides)
    return make_signals(request_time, **fields)


class TestSourceSignals:
    """Referrer and network organization scoring."""

    def test_linkedin_referrer_alone_is_recruiter(self):
        result = classify(make_signals(referrer_url="https://www.linkedin.com/in/someone/"))
        assert result.score >= 40
        assert result.is_likely_recruiter
        assert "professional_network_referrer" in result.matched_signal_tags

    def test_job_board_referrer(self):
        result = classify(make_signals(referrer_url="https://www.indeed.com/viewjob?jk=1"))
        assert "job_board_referrer" in result.matched_signal_tags
        assert result.is_likely_recruiter

    def test_recruiting_organization_reaches_threshold(self):
        result = classify(make_signals(source_organization="AS1234 Robert Half International"))
        assert "recruiting_organization" in result.matched_signal_tags
        assert result.score >= RECRUITER_THRESHOLD
        assert result.is_likely_recruiter
        assert result.company == "AS1234 Robert Half International"

    def test_consumer_isp_earns_nothing(self):
        result = classify(make_signals(source_organization="AS7922 Comcast Cable Communications, LLC"))
        assert result.score == 0
        assert not result.matched_signal_tags
        assert not result.is_likely_recruiter

    def test_corporate_network_is_only_a_nudge(self):
        result = classify(make_signals(source_organization="Acme Widgets Inc"))
        assert result.matched_signal_tags == frozenset({"corporate_network"})
        assert not result.is_likely_recruiter

    def test_location_is_passed_through(self):
        result = classify(make_signals(source_organization="Acme Widgets Inc", source_location="Austin, Texas, United States"))
        assert result.location == "Austin, Texas, United States"
        assert result.has_company_info


class TestCorroboratingSignals:
    """Engagement, hardware, time of day and user-agent."""

    def test_no_signals_off_hours(self):
        result = classify(make_signals())
        assert result.score == 0
        assert not result.is_likely_recruiter

    def test_corroborating_alone_never_crosses_threshold(self):
        result = classify(maxed_corroborating())
        assert result.score == CORROBORATING_CAP
        assert not result.is_likely_recruiter
        assert {"engaged_conversation", "professional_display", "long_session",
                "recruiting_platform_agent"} <= result.matched_signal_tags

    def test_corroborating_alone_during_business_hours(self):
        result = classify(maxed_corroborating(BUSINESS_HOURS))
        assert "business_hours" in result.matched_signal_tags
        assert "business_timezone_hours" in result.matched_signal_tags
        assert not result.is_likely_recruiter

    def test_business_hours_use_owner_timezone(self):
        # 15:00 UTC is 10:00 in Chicago but 00:00 in Tokyo
        assert "business_hours" in classify(make_signals(BUSINESS_HOURS)).matched_signal_tags
        assert "business_hours" not in classify(make_signals(BUSINESS_HOURS), owner_timezone="Asia/Tokyo").matched_signal_tags

    def test_three_messages_is_not_engaged(self):
        result = classify(make_signals(message_count_so_far=3))
        assert "engaged_conversation" not in result.matched_signal_tags

    def test_unknown_timezone_is_ignored(self):
        result = classify(make_signals(BUSINESS_HOURS, timezone="Not/AZone"))
        assert "business_timezone_hours" not in result.matched_signal_tags

    def test_corroborating_adds_to_source(self):
        result = classify(maxed_corroborating(source_organization="Acme Widgets Inc"))
        assert result.score == 10 + CORROBORATING_CAP
        assert result.is_likely_recruiter


class TestClassificationInvariants:

    @pytest.mark.parametrize("signals", [
        make_signals(),
        make_signals(referrer_url="https://lnkd.in/abc"),
        make_signals(source_organization="Globex Corporation"),
        make_signals(source_organization="Talent Partners LLC", referrer_url="https://glassdoor.com"),
        maxed_corroborating(BUSINESS_HOURS, source_organization="Verizon Wireless"),
    ])
    def test_flag_matches_threshold(self, signals):
        result = classify(signals)
        assert result.is_likely_recruiter == (result.score >= RECRUITER_THRESHOLD)

    def test_deterministic(self):
        signals = maxed_corroborating(BUSINESS_HOURS, referrer_url="https://www.linkedin.com/feed")
        first, second = classify(signals), classify(signals)
        assert first == second

    def test_visitor_info_shape(self):
        info = classify(make_signals(source_organization="Acme Widgets Inc")).to_visitor_info()
        assert info == {
            "company": "Acme Widgets Inc",
            "location": None,
            "isLikelyRecruiter": False,
            "score": 10,
            "signals": ["corporate_network"],
        }


class TestSignalHelpers:

    def test_consumer_isp(self):
        assert is_consumer_isp("Charter Communications Inc")
        assert not is_consumer_isp("Initech")

    def test_recruiting_organization(self):
        assert is_recruiting_organization("Hays Specialist Recruitment")
        assert is_recruiting_organization("Acme Staffing Solutions")
        assert not is_recruiting_organization("Acme Widgets Inc")

    @pytest.mark.parametrize("resolution,expected", [
        ("1920x1080", True),
        ("1080x1920", True),
        ("1440x900", False),
        ("garbage", False),
        ("", False),
    ])
    def test_professional_resolution(self, resolution, expected):
        assert is_professional_resolution(resolution) is expected
