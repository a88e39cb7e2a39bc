"""IP-to-organization lookup used to enrich visitor signals.

Failures here are never surfaced: a timeout, a non-2xx answer or a garbled
payload all mean "no company info" and the classifier carries on with what it
has.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import requests

from career_assistant.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoInfo:
    organization: Optional[str] = None
    location: Optional[str] = None


class GeoLookupProvider(Protocol):
    def lookup(self, ip: str) -> Optional[GeoInfo]:
        ...


def is_public_ip(ip: Optional[str]) -> bool:
    """Loopback, private and malformed addresses are not worth a lookup."""
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    return address.is_global


class IpApiGeoLookup:
    """GeoLookupProvider backed by an ipapi.co style JSON endpoint."""

    def __init__(self, url_template: Optional[str] = None, timeout: Optional[float] = None, session=None):
        self.url_template = url_template or settings.get_geo_lookup_url()
        self.timeout = timeout if timeout is not None else settings.get_geo_lookup_timeout()
        self.session = session or requests

    def lookup(self, ip: str) -> Optional[GeoInfo]:
        if not is_public_ip(ip):
            logger.debug(f"Skipping geo lookup for non-public address: {ip!r}")
            return None

        try:
            response = self.session.get(self.url_template.format(ip=ip), timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Geo lookup failed for {ip}: {e}")
            return None

        if not isinstance(data, dict) or data.get("error"):
            logger.warning(f"Geo lookup returned no data for {ip}: {data!r:.200}")
            return None

        organization = (data.get("org") or data.get("organization") or "").strip() or None
        parts = [data.get("city"), data.get("region"), data.get("country_name") or data.get("country")]
        location = ", ".join(p.strip() for p in parts if isinstance(p, str) and p.strip()) or None

        if not organization and not location:
            return None
        return GeoInfo(organization=organization, location=location)
