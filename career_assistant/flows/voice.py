"""Speech capability interfaces used by the conversation session.

The session never talks to a concrete speech engine. A browser bridge, a
desktop engine or a test fake plugs in through these two protocols.
Callbacks may arrive on the engine's own thread.
"""

from __future__ import annotations

import re
from typing import Callable, Protocol


class SpeechRecognizer(Protocol):
    def start(self, on_final: Callable[[str], None]) -> None:
        """Begin capturing; call ``on_final`` once with the finalized transcript."""

    def stop(self) -> None:
        ...


class SpeechSynthesizer(Protocol):
    def speak(self, text: str, on_end: Callable[[], None]) -> None:
        """Start speaking ``text``; call ``on_end`` when done or on error."""

    def cancel(self) -> None:
        ...


_BOLD = re.compile(r"\*\*(.*?)\*\*")
_ITALIC = re.compile(r"\*(.*?)\*")
_CODE = re.compile(r"`(.*?)`")


def strip_markdown(text: str) -> str:
    """Remove emphasis/code markers so they are not read aloud."""
    text = _BOLD.sub(r"\1", text)
    text = _ITALIC.sub(r"\1", text)
    text = _CODE.sub(r"\1", text)
    return text.strip()
