"""Application settings and environment configuration.

Simple module-level constants plus getters for anything read from the
environment. Credentials are read at call time (not import time) so a
missing key degrades a single request instead of crashing the process.

Environment Variables:
- CLAUDE_API_KEY: Completion service key (falls back to ANTHROPIC_API_KEY)
- SLACK_WEBHOOK_URL: Incoming webhook used by the notification relay
- SLACK_BOT_TOKEN / SLACK_APP_TOKEN: Bot and Socket Mode tokens for the live chat relay
- SLACK_CHANNEL: Channel the live chat relay posts to (default: #recruiter)
- CLAUDE_MODEL / CLAUDE_MAX_TOKENS / CLAUDE_TEMPERATURE: Generation parameters
- GEO_LOOKUP_URL: IP lookup URL template with an {ip} placeholder
- GEO_LOOKUP_TIMEOUT: Seconds before the IP lookup is abandoned
- OWNER_TIMEZONE: Timezone used for the wall-clock business-hours signal
- BIOGRAPHY_PATH: Override for the bundled biography document
- ASSISTANT_API_URL: Base URL the terminal client talks to
- LOG_LEVEL: Root logging level (default: INFO)
- PROJECT_ROOT: Project root directory (auto-detected if not set)
"""

import os
from pathlib import Path
from typing import Optional


# Detect project root
def _detect_project_root() -> Path:
    """Detect project root directory.

    Tries in order:
    1. PROJECT_ROOT environment variable
    2. Git repository root (walks up from cwd)
    3. Current working directory
    """
    if os.getenv("PROJECT_ROOT"):
        return Path(os.getenv("PROJECT_ROOT")).resolve()

    current = Path.cwd()
    while current != current.parent:
        if (current / ".git").exists():
            return current
        current = current.parent

    return Path.cwd()


PROJECT_ROOT = _detect_project_root()

# Completion service defaults
DEFAULT_MODEL = "claude-3-haiku-20240307"
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7

# Context forwarded to the completion service
MAX_HISTORY_TURNS = 20

# Visitor enrichment
DEFAULT_GEO_LOOKUP_URL = "https://ipapi.co/{ip}/json/"
DEFAULT_GEO_LOOKUP_TIMEOUT = 3.0
DEFAULT_OWNER_TIMEZONE = "America/Chicago"

# Notification relay
SLACK_TIMEOUT_SECONDS = 10
DEFAULT_SLACK_CHANNEL = "#recruiter"

# Session pacing (seconds)
HANDOFF_TRANSITION_DELAY = 2.0
VOICE_REPLY_DELAY = 0.5

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

SITE_NAME = os.getenv("SITE_NAME", "ryanclayton.io")
OWNER_NAME = os.getenv("OWNER_NAME", "Ryan")
OWNER_EMAIL = os.getenv("OWNER_EMAIL", "ryanclayton78@gmail.com")


def get_claude_api_key() -> Optional[str]:
    """Return the completion service key, or None when unset/blank."""
    key = os.getenv("CLAUDE_API_KEY") or os.getenv("ANTHROPIC_API_KEY")
    return key.strip() if key and key.strip() else None


def get_slack_webhook_url() -> Optional[str]:
    """Return the Slack incoming webhook URL, or None when unset/blank."""
    url = os.getenv("SLACK_WEBHOOK_URL", "").strip()
    return url or None


def get_model_name() -> str:
    return os.getenv("CLAUDE_MODEL", DEFAULT_MODEL)


def get_max_tokens() -> int:
    try:
        return int(os.getenv("CLAUDE_MAX_TOKENS", DEFAULT_MAX_TOKENS))
    except ValueError:
        return DEFAULT_MAX_TOKENS


def get_temperature() -> float:
    try:
        return float(os.getenv("CLAUDE_TEMPERATURE", DEFAULT_TEMPERATURE))
    except ValueError:
        return DEFAULT_TEMPERATURE


def get_geo_lookup_url() -> str:
    return os.getenv("GEO_LOOKUP_URL", DEFAULT_GEO_LOOKUP_URL)


def get_geo_lookup_timeout() -> float:
    try:
        return float(os.getenv("GEO_LOOKUP_TIMEOUT", DEFAULT_GEO_LOOKUP_TIMEOUT))
    except ValueError:
        return DEFAULT_GEO_LOOKUP_TIMEOUT


def get_owner_timezone() -> str:
    return os.getenv("OWNER_TIMEZONE", DEFAULT_OWNER_TIMEZONE)


def get_biography_path() -> Optional[Path]:
    """Get the biography override path as an absolute Path, if configured.

    Relative paths are resolved against the project root.
    """
    raw = os.getenv("BIOGRAPHY_PATH")
    if not raw:
        return None

    path = Path(raw)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path.resolve()


def get_assistant_api_url() -> Optional[str]:
    url = os.getenv("ASSISTANT_API_URL", "").strip()
    return url.rstrip("/") or None


def get_slack_bot_token() -> Optional[str]:
    token = os.getenv("SLACK_BOT_TOKEN", "").strip()
    return token or None


def get_slack_app_token() -> Optional[str]:
    """Socket Mode app-level token (xapp-...), or None when unset/blank."""
    token = os.getenv("SLACK_APP_TOKEN", "").strip()
    return token or None


def get_slack_channel() -> str:
    return os.getenv("SLACK_CHANNEL", "").strip() or DEFAULT_SLACK_CHANNEL
