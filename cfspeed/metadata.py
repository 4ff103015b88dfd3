"""
Cloudflare ``/meta`` client.

Resolves a human-readable network identity (carrier name, then airport
code, then IP) for display next to the results.  The lookup is not timed
and is isolated from the measurement: every failure is logged and turned
into ``None``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from .constants import COMMON_HEADERS, META_TIMEOUT, META_URL

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class ClientInfo:
    """What the metadata endpoint knows about this client."""

    ip: str = ""
    asn_name: str = ""
    iata: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> ClientInfo:
        client = data.get("client") if isinstance(data, dict) else None
        if not isinstance(client, dict):
            return cls()
        asn = client.get("asn")
        return cls(
            ip=str(client.get("ip") or ""),
            asn_name=str(asn.get("name") or "") if isinstance(asn, dict) else "",
            iata=str(client.get("iata") or ""),
        )

    @property
    def label(self) -> Optional[str]:
        return self.asn_name or self.iata or self.ip or None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ip": self.ip,
            "asn_name": self.asn_name,
            "iata": self.iata,
        }


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

async def fetch_client_info(session: aiohttp.ClientSession, url: str = META_URL) -> ClientInfo:
    """Fetch and parse the metadata document.  Raises on HTTP errors."""
    async with session.get(url) as resp:
        resp.raise_for_status()
        data = await resp.json(content_type=None)
    return ClientInfo.from_dict(data)


async def get_network_identity(
    session: Optional[aiohttp.ClientSession] = None,
    url: str = META_URL,
) -> Optional[str]:
    """Return the network identity label, or ``None`` if it can't be had."""
    try:
        if session is not None:
            info = await fetch_client_info(session, url)
        else:
            timeout = aiohttp.ClientTimeout(total=META_TIMEOUT)
            async with aiohttp.ClientSession(headers=COMMON_HEADERS, timeout=timeout) as own:
                info = await fetch_client_info(own, url)
    except Exception as exc:
        logger.warning("Unable to fetch network metadata: %s", exc)
        return None
    return info.label
