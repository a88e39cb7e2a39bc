"""Shared fixtures and deterministic fakes for the career assistant tests."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from career_assistant.core.api_client import BackendError
from career_assistant.core.completion_provider import CompletionResult, UpstreamError
from career_assistant.prompts import Biography
from career_assistant.signals.geo_lookup import GeoInfo
from career_assistant.state.conversation_state import VisitorSignals

# 2024-06-05 03:00 UTC is 22:00 in Chicago and 23:00 in New York: outside business hours.
OFF_HOURS = datetime(2024, 6, 5, 3, 0, tzinfo=timezone.utc)
# 2024-06-05 15:00 UTC is 10:00 in Chicago and 11:00 in New York.
BUSINESS_HOURS = datetime(2024, 6, 5, 15, 0, tzinfo=timezone.utc)


class FakeCompletionProvider:
    def __init__(self, text: str = "Happy to help!", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def complete(self, system_prompt, messages):
        self.calls.append({"system_prompt": system_prompt, "messages": messages})
        if self.error is not None:
            raise self.error
        return CompletionResult(text=self.text, id="msg_test", usage={"input_tokens": 10, "output_tokens": 5})


class FakeGeoLookup:
    def __init__(self, organization: Optional[str] = None, location: Optional[str] = None):
        self.info = GeoInfo(organization, location) if (organization or location) else None
        self.calls: List[str] = []

    def lookup(self, ip):
        self.calls.append(ip)
        return self.info


class FakeBackend:
    """Scriptable AssistantBackend.

    ``replies`` is consumed in order; an Exception entry is raised instead of
    returned. ``before_reply`` runs inside ``complete`` to simulate events
    that happen while a request is in flight.
    """

    def __init__(self, replies=None, welcome: Any = "Welcome!", handoff_error: Optional[Exception] = None):
        self.replies = list(replies or [])
        self.welcome = welcome
        self.handoff_error = handoff_error
        self.before_reply: Optional[Callable[[], None]] = None
        self.requests: List[Dict[str, Any]] = []
        self.handoffs = []

    def complete(self, message, history, browser_data):
        self.requests.append({"message": message, "history": history, "browser_data": browser_data})
        if message == "__WELCOME_MESSAGE__":
            if isinstance(self.welcome, Exception):
                raise self.welcome
            return self.welcome
        if self.before_reply is not None:
            hook, self.before_reply = self.before_reply, None
            hook()
        reply = self.replies.pop(0) if self.replies else "OK"
        if isinstance(reply, Exception):
            raise reply
        return reply

    def send_handoff(self, handoff):
        if self.handoff_error is not None:
            raise self.handoff_error
        self.handoffs.append(handoff)


class FakeRecognizer:
    def __init__(self):
        self.on_final = None
        self.started = 0
        self.stopped = 0

    def start(self, on_final):
        self.started += 1
        self.on_final = on_final

    def stop(self):
        self.stopped += 1

    def say(self, text):
        self.on_final(text)


class FakeSynthesizer:
    def __init__(self):
        self.spoken: List[str] = []
        self.cancelled = 0
        self.on_end = None

    def speak(self, text, on_end):
        self.spoken.append(text)
        self.on_end = on_end

    def cancel(self):
        self.cancelled += 1

    def finish(self):
        self.on_end()


class ManualScheduler:
    """Collects delayed callbacks so tests decide when they run."""

    def __init__(self):
        self.pending = []

    def __call__(self, delay, callback):
        self.pending.append((delay, callback))

    def run_all(self):
        pending, self.pending = self.pending, []
        for _, callback in pending:
            callback()


def immediate_scheduler(delay, callback):
    callback()


def make_signals(request_time: datetime = OFF_HOURS, **overrides) -> VisitorSignals:
    return VisitorSignals(request_time=request_time, **overrides)


@pytest.fixture
def biography():
    return Biography(text="You are a test assistant for Ryan.", source="test")


@pytest.fixture
def provider():
    return FakeCompletionProvider()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clock():
    """Clock that advances one second per call."""
    state = {"now": OFF_HOURS}

    def tick():
        state["now"] = state["now"] + timedelta(seconds=1)
        return state["now"]

    return tick


@pytest.fixture
def backend_error():
    return BackendError("HTTP error! status: 500")


@pytest.fixture
def upstream_429():
    return UpstreamError(429, "rate limited")
