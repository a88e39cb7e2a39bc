"""Visitor signal collection.

Gathers the network origin (client IP + org lookup), HTTP referrer,
user-agent and the browser-reported telemetry into one VisitorSignals
record. Client telemetry is untrusted and loosely typed, so every field is
coerced defensively and bad values simply drop out.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from career_assistant.signals.geo_lookup import GeoLookupProvider
from career_assistant.state.conversation_state import VisitorSignals, utc_now

logger = logging.getLogger(__name__)


def client_ip_from_headers(headers: Mapping[str, str], client_host: Optional[str] = None) -> Optional[str]:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded = _header(headers, "x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = _header(headers, "x-real-ip") or _header(headers, "x-nf-client-connection-ip")
    if real_ip:
        return real_ip.strip()
    return client_host


def collect_signals(
    headers: Mapping[str, str],
    browser_data: Optional[Mapping[str, Any]] = None,
    client_host: Optional[str] = None,
    geo_lookup: Optional[GeoLookupProvider] = None,
    request_time: Optional[datetime] = None,
) -> VisitorSignals:
    """Build VisitorSignals for one request.

    Args:
        headers: Incoming HTTP headers (any case)
        browser_data: Client telemetry (timezone, screenResolution, sessionStart,
            sessionDuration in ms, messageCount, optional referrer/userAgent)
        client_host: Socket peer address, used when no proxy header is present
        geo_lookup: Provider for the IP -> organization lookup; None skips it
        request_time: Timestamp to stamp the signals with (defaults to now, UTC)

    Returns:
        VisitorSignals; never raises on lookup failure
    """
    request_time = request_time or utc_now()
    data = dict(browser_data or {})

    ip = client_ip_from_headers(headers, client_host)
    organization = location = None
    if geo_lookup is not None and ip:
        try:
            info = geo_lookup.lookup(ip)
        except Exception as e:
            # Providers are expected to absorb their own errors; this keeps a
            # misbehaving one from failing the request.
            logger.warning(f"Geo lookup provider raised for {ip}: {e}")
            info = None
        if info is not None:
            organization, location = info.organization, info.location

    referrer = _str(data.get("referrer")) or _header(headers, "referer") or ""
    user_agent = _header(headers, "user-agent") or _str(data.get("userAgent")) or ""

    return VisitorSignals(
        request_time=request_time,
        source_ip=ip,
        source_organization=organization,
        source_location=location,
        referrer_url=referrer,
        user_agent=user_agent,
        timezone=_str(data.get("timezone")) or "",
        screen_resolution=_str(data.get("screenResolution")) or "",
        session_start_time=_session_start(data, request_time),
        message_count_so_far=_int(data.get("messageCount")),
    )


def _session_start(data: Mapping[str, Any], request_time: datetime) -> Optional[datetime]:
    start = parse_timestamp(data.get("sessionStart"))
    if start is not None:
        return start

    duration_ms = data.get("sessionDuration")
    if isinstance(duration_ms, bool) or not isinstance(duration_ms, (int, float)):
        return None
    if not math.isfinite(duration_ms) or duration_ms < 0:
        return None
    try:
        return request_time - timedelta(milliseconds=duration_ms)
    except OverflowError:
        # Longer than the calendar can represent
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept ISO 8601 strings or epoch milliseconds (Date.now())."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name:
                value = candidate
                break
    return value


def _str(value: Any) -> Optional[str]:
    return value.strip() if isinstance(value, str) and value.strip() else None


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return max(0, int(value))
    except (TypeError, ValueError, OverflowError):
        return 0
