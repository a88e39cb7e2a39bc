"""Loading of the static biography document used as the base system prompt."""

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from career_assistant.config import settings

logger = logging.getLogger(__name__)

BUNDLED_BIOGRAPHY = Path(__file__).with_name("biography.md")


@dataclass(frozen=True)
class Biography:
    text: str
    source: str = "inline"


@lru_cache(maxsize=4)
def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8").strip()


def load_biography(path: Optional[Path] = None) -> Biography:
    """Load the biography document.

    Resolution order: explicit ``path``, the BIOGRAPHY_PATH setting, then the
    bundled biography.md. An unreadable override falls back to the bundled
    copy so the assistant keeps answering.
    """
    candidate = path or settings.get_biography_path()
    if candidate is not None:
        try:
            return Biography(text=_read(Path(candidate)), source=str(candidate))
        except OSError as e:
            logger.error(f"Could not read biography at {candidate}: {e}; using bundled copy")

    return Biography(text=_read(BUNDLED_BIOGRAPHY), source=str(BUNDLED_BIOGRAPHY))
