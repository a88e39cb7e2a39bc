"""Client-side conversation session.

Owns the transcript, the interview progress and the hand-off lifecycle for
one visitor. One enum per orthogonal concern:

    network:  INITIALIZING -> AWAITING_INPUT -> AWAITING_COMPLETION -> DISPLAYING -> AWAITING_INPUT
    voice in: IDLE <-> LISTENING <-> TRANSCRIPT_READY
    voice out: IDLE <-> SPEAKING
    hand-off: NONE -> OFFERED -> SUBMITTED | ABANDONED

Every failure path returns the network state to AWAITING_INPUT; nothing a
backend does can leave the session unusable.

Voice contract: an assistant turn is spoken only when voice output is enabled
AND the user turn it answers was itself spoken. Typed questions get silent
answers.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from career_assistant.config import settings
from career_assistant.core.api_client import AssistantBackend, BackendError
from career_assistant.core.completion_gateway import WELCOME_SENTINEL
from career_assistant.flows.handoff_evaluator import (
    build_handoff,
    build_transition_text,
    evaluate,
    validate_contact_details,
)
from career_assistant.flows.voice import SpeechRecognizer, SpeechSynthesizer, strip_markdown
from career_assistant.state.conversation_state import (
    CandidateHandoff,
    ConversationTurn,
    HandoffState,
    InterviewProgress,
    NetworkState,
    SpeechOutputState,
    TurnRole,
    VoiceInputState,
    utc_now,
)

logger = logging.getLogger(__name__)

Scheduler = Callable[[float, Callable[[], None]], None]

FALLBACK_GREETING = (
    f"👋 Hi! I'm {settings.OWNER_NAME}'s AI recruiting assistant. I'll conduct a brief interview to understand your "
    f"background and needs. Based on our conversation, I may connect you directly with {settings.OWNER_NAME} for "
    "immediate discussion. Ready to start?"
)
CONNECTION_ERROR_MESSAGE = "Sorry, I'm having trouble connecting right now. Please try again in a moment."
VOICE_UNSUPPORTED_MESSAGE = "Speech recognition is not supported here. Please type your message instead."
HANDOFF_DETAILS_MISSING_MESSAGE = f"Please fill in your name and email to connect with {settings.OWNER_NAME} directly."
HANDOFF_ERROR_MESSAGE = f"Sorry, there was an error connecting to {settings.OWNER_NAME}. Please try again."
HANDOFF_CONFIRMATION_MESSAGE = f"✅ {settings.OWNER_NAME} has been notified with your interview summary and will reach out shortly."


def thread_scheduler(delay: float, callback: Callable[[], None]) -> None:
    """Run ``callback`` after ``delay`` seconds on a daemon timer thread."""
    if delay <= 0:
        callback()
        return
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()


class ConversationSession:
    """One visitor's chat with the career assistant.

    Args:
        backend: Completion + hand-off backend (HTTP or in-process)
        recognizer: Optional speech-to-text engine
        synthesizer: Optional text-to-speech engine
        scheduler: Runs delayed work (transition turn, spoken reply)
        clock: Timestamp source
        timezone: Browser timezone reported with each request
        screen_resolution: Browser screen size reported with each request
        voice_output_enabled: Global switch for spoken replies
        on_turn: Called with every turn appended to the transcript
    """

    def __init__(
        self,
        backend: AssistantBackend,
        recognizer: Optional[SpeechRecognizer] = None,
        synthesizer: Optional[SpeechSynthesizer] = None,
        scheduler: Scheduler = thread_scheduler,
        clock: Callable[[], datetime] = utc_now,
        timezone: str = "",
        screen_resolution: str = "",
        voice_output_enabled: bool = True,
        on_turn: Optional[Callable[[ConversationTurn], None]] = None,
    ):
        self.backend = backend
        self.recognizer = recognizer
        self.synthesizer = synthesizer
        self.scheduler = scheduler
        self.clock = clock
        self.timezone = timezone
        self.screen_resolution = screen_resolution
        self.voice_output_enabled = voice_output_enabled
        self.on_turn = on_turn

        self.session_start = clock()
        self.network_state = NetworkState.INITIALIZING
        self.voice_input_state = VoiceInputState.IDLE
        self.speech_output_state = SpeechOutputState.IDLE
        self.handoff_state = HandoffState.NONE
        self.progress = InterviewProgress()
        self.handoff: Optional[CandidateHandoff] = None
        self.closed = False

        self._turns: List[ConversationTurn] = []
        self._transition_scheduled = False
        # Guards the transcript against the delayed transition turn
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def transcript(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    @property
    def is_loading(self) -> bool:
        return self.network_state in (NetworkState.INITIALIZING, NetworkState.AWAITING_COMPLETION)

    @property
    def user_turn_count(self) -> int:
        return sum(1 for turn in self._turns if turn.role == TurnRole.USER)

    def browser_data(self) -> Dict[str, Any]:
        now = self.clock()
        return {
            "timezone": self.timezone,
            "screenResolution": self.screen_resolution,
            "sessionStart": self.session_start.isoformat(),
            "sessionDuration": int(max(0.0, (now - self.session_start).total_seconds()) * 1000),
            "messageCount": self.user_turn_count,
        }

    # ------------------------------------------------------------------
    # Transcript
    # ------------------------------------------------------------------

    def _append(self, role: TurnRole, text: str, via_voice: bool = False,
                metadata: Optional[Dict[str, Any]] = None) -> ConversationTurn:
        turn = ConversationTurn(role=role, text=text, created_at=self.clock(), via_voice=via_voice, metadata=metadata)
        self._turns.append(turn)
        if self.on_turn is not None:
            self.on_turn(turn)
        return turn

    # ------------------------------------------------------------------
    # Network flow
    # ------------------------------------------------------------------

    def start(self) -> ConversationTurn:
        """Load the greeting; falls back to a fixed greeting on any failure."""
        if self.network_state != NetworkState.INITIALIZING:
            raise RuntimeError("Session already started")

        greeting = FALLBACK_GREETING
        try:
            text = self.backend.complete(WELCOME_SENTINEL, [], self.browser_data())
            if text and text.strip():
                greeting = text
        except BackendError as e:
            logger.warning(f"Welcome message unavailable, using fallback: {e}")
        except Exception:
            logger.exception("Unexpected error loading welcome message")

        turn = self._append(TurnRole.SYSTEM, greeting)
        self.network_state = NetworkState.AWAITING_INPUT
        return turn

    def submit_text(self, text: str, via_voice: bool = False) -> Optional[ConversationTurn]:
        """Send one user utterance and return the assistant turn.

        Returns None when the input was ignored (blank, request in flight,
        hand-off already offered, session closed) or when the request failed
        and a retry message was shown instead.
        """
        text = (text or "").strip()
        if not text:
            return None
        if not self._lock.acquire(blocking=False):
            logger.debug("Ignoring submission while the transcript is being updated")
            return None
        try:
            return self._submit_locked(text, via_voice)
        finally:
            self._lock.release()

    def _submit_locked(self, text: str, via_voice: bool) -> Optional[ConversationTurn]:
        if self.closed or self.network_state != NetworkState.AWAITING_INPUT:
            logger.debug(f"Ignoring submission in state {self.network_state.value} (closed={self.closed})")
            return None
        if self.handoff_state != HandoffState.NONE:
            logger.debug(f"Ignoring submission after hand-off ({self.handoff_state.value})")
            return None

        self._append(TurnRole.USER, text, via_voice=via_voice)
        self.network_state = NetworkState.AWAITING_COMPLETION
        history = [turn.to_payload() for turn in self._turns]

        try:
            reply = self.backend.complete(text, history, self.browser_data())
        except Exception as e:
            if isinstance(e, BackendError):
                logger.warning(f"Completion request failed: {e}")
            else:
                logger.exception("Unexpected completion failure")
            if self.closed:
                return None
            self._append(TurnRole.SYSTEM, CONNECTION_ERROR_MESSAGE)
            self.network_state = NetworkState.AWAITING_INPUT
            return None

        if self.closed:
            logger.debug("Session closed while waiting; discarding completion")
            return None

        self.network_state = NetworkState.DISPLAYING
        assistant_turn = self._append(TurnRole.ASSISTANT, reply)
        self.network_state = NetworkState.AWAITING_INPUT

        self.refresh_progress()
        if self.voice_output_enabled and via_voice:
            self.scheduler(settings.VOICE_REPLY_DELAY, lambda: self.speak(reply))
        return assistant_turn

    # ------------------------------------------------------------------
    # Interview progress and hand-off
    # ------------------------------------------------------------------

    def refresh_progress(self) -> InterviewProgress:
        """Re-scan the transcript; schedule the transition once qualified."""
        self.progress = evaluate(self._turns)
        if self.progress.qualified and not self._transition_scheduled and self.handoff_state == HandoffState.NONE:
            self._transition_scheduled = True
            logger.info(
                f"Interview qualified: responses={self.progress.response_count} "
                f"score={self.progress.cumulative_score}"
            )
            self.scheduler(settings.HANDOFF_TRANSITION_DELAY, self._offer_handoff)
        return self.progress

    def _offer_handoff(self) -> None:
        # Waits for any in-flight completion so the offer follows its answer
        with self._lock:
            if self.closed or self.handoff_state != HandoffState.NONE:
                return
            progress = evaluate(self._turns)
            self._append(
                TurnRole.TRANSITION,
                build_transition_text(progress),
                metadata={
                    "interview_score": progress.cumulative_score,
                    "qualified": progress.qualified,
                    "candidate_profile": progress.to_profile(),
                },
            )
            self.handoff = build_handoff(progress.extracted_name or "", "", "", self._turns)
            self.handoff_state = HandoffState.OFFERED

    def submit_handoff(self, name: str, email: str, company: str = "") -> bool:
        """Send the contact details and transcript to the owner."""
        with self._lock:
            return self._submit_handoff_locked(name, email, company)

    def _submit_handoff_locked(self, name: str, email: str, company: str) -> bool:
        if self.handoff_state != HandoffState.OFFERED:
            logger.debug(f"Hand-off submission ignored in state {self.handoff_state.value}")
            return False

        errors = validate_contact_details(name, email)
        if errors:
            self._append(TurnRole.SYSTEM, HANDOFF_DETAILS_MISSING_MESSAGE)
            return False

        handoff = build_handoff(name, email, company, self._turns)
        try:
            self.backend.send_handoff(handoff)
        except Exception as e:
            logger.error(f"Error transitioning to live chat: {e}")
            self._append(TurnRole.SYSTEM, HANDOFF_ERROR_MESSAGE)
            return False

        self.handoff = handoff
        self.handoff_state = HandoffState.SUBMITTED
        self._append(TurnRole.SYSTEM, HANDOFF_CONFIRMATION_MESSAGE)
        return True

    def close(self) -> None:
        """End the session; an unanswered hand-off offer is abandoned."""
        self.closed = True
        self.stop_listening()
        self.stop_speaking()
        if self.handoff_state == HandoffState.OFFERED:
            self.handoff_state = HandoffState.ABANDONED
            logger.info("Hand-off abandoned")

    # ------------------------------------------------------------------
    # Voice
    # ------------------------------------------------------------------

    def toggle_voice_input(self) -> None:
        if self.recognizer is None:
            self._append(TurnRole.SYSTEM, VOICE_UNSUPPORTED_MESSAGE)
            return
        if self.voice_input_state == VoiceInputState.LISTENING:
            self.stop_listening()
            return
        if self.closed or self.network_state != NetworkState.AWAITING_INPUT:
            return

        self.stop_speaking()
        self.voice_input_state = VoiceInputState.LISTENING
        self.recognizer.start(self._on_transcript)

    def stop_listening(self) -> None:
        if self.recognizer is not None and self.voice_input_state == VoiceInputState.LISTENING:
            self.recognizer.stop()
        self.voice_input_state = VoiceInputState.IDLE

    def _on_transcript(self, transcript: str) -> None:
        if self.voice_input_state != VoiceInputState.LISTENING:
            return
        self.voice_input_state = VoiceInputState.TRANSCRIPT_READY
        self.recognizer.stop()
        try:
            self.submit_text(transcript, via_voice=True)
        finally:
            self.voice_input_state = VoiceInputState.IDLE

    def speak(self, text: str) -> None:
        if self.closed or not self.voice_output_enabled or self.synthesizer is None:
            return
        self.stop_listening()
        self.stop_speaking()
        self.speech_output_state = SpeechOutputState.SPEAKING
        self.synthesizer.speak(strip_markdown(text), self._on_speech_end)

    def _on_speech_end(self) -> None:
        self.speech_output_state = SpeechOutputState.IDLE

    def stop_speaking(self) -> None:
        if self.synthesizer is not None and self.speech_output_state == SpeechOutputState.SPEAKING:
            self.synthesizer.cancel()
        self.speech_output_state = SpeechOutputState.IDLE

    def set_voice_output(self, enabled: bool) -> None:
        self.voice_output_enabled = enabled
        if not enabled:
            self.stop_speaking()
