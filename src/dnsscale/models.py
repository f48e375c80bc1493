"""Shared data model for dnsscale.

Nodes come from the tailnet snapshot source, records go to the DNS backends,
and change keys travel through the work queue between the two.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

# =============================================================================
# Constants
# =============================================================================

RECORD_TTL = 300
ONLINE_WINDOW = timedelta(minutes=5)
OWNERSHIP_PREFIX = "dnsscale-managed"

RECORD_TYPE_A = "A"
RECORD_TYPE_AAAA = "AAAA"
RECORD_TYPE_TXT = "TXT"
SUPPORTED_RECORD_TYPES = (RECORD_TYPE_A, RECORD_TYPE_AAAA, RECORD_TYPE_TXT)

# =============================================================================
# Exceptions
# =============================================================================


class DNSScaleError(Exception):
    """Base exception for dnsscale."""


class ConfigError(DNSScaleError):
    """Raised when the configuration is missing or invalid."""


class SnapshotError(DNSScaleError):
    """Raised when the node list cannot be fetched."""


class DNSProviderError(DNSScaleError):
    """Raised when a DNS backend call fails."""


class NodeNotFoundError(DNSScaleError):
    """Raised when a queued node id is no longer in the node cache."""


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class DNSRecord:
    """Represents a DNS record."""

    name: str
    type: str
    value: str
    ttl: int = RECORD_TTL


@dataclass(frozen=True)
class Node:
    """A simplified, display-ready tailnet device."""

    id: str
    name: str
    hostname: str = ""
    addresses: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    online: bool = False
    last_seen: Optional[datetime] = None


@dataclass(frozen=True)
class ChangeKey:
    """Unit of queued work: a node id, optionally flagged for deletion."""

    node_id: str
    delete: bool = False

    def __str__(self) -> str:
        return f"{self.node_id}:delete" if self.delete else self.node_id


# =============================================================================
# Naming and Conversion Helpers
# =============================================================================


def derive_node_name(name: str, hostname: str) -> str:
    """Return the short device name used as the DNS label.

    The explicit name wins over the hostname; anything from the first dot on is
    dropped ("lbr-macbook.tail4cf751.ts.net" -> "lbr-macbook"). A leading dot is
    left alone.
    """
    derived = name or hostname
    dot_index = derived.find(".")
    if dot_index > 0:
        derived = derived[:dot_index]
    return derived


def record_type_for_address(address: str) -> str:
    return RECORD_TYPE_AAAA if ":" in address else RECORD_TYPE_A


def record_name_for(node: Node, domain: str) -> str:
    return f"{node.name}.{domain}"


def in_zone(name: str, zone: str) -> bool:
    """True when ``name`` is ``zone`` itself or a name below it."""
    name = name.rstrip(".").lower()
    zone = zone.rstrip(".").lower()
    return name == zone or name.endswith(f".{zone}")


def ownership_value(node_id: str) -> str:
    """TXT value marking a record name as owned by the given node."""
    return f'"{OWNERSHIP_PREFIX} node_id={node_id}"'


def is_ownership_record(record: DNSRecord, node_id: str) -> bool:
    """Check whether a record is the ownership marker for ``node_id``.

    The id must be followed by the end of the value, a quote or whitespace, so
    that ``node_id=12`` never claims the records of ``node_id=123``.
    """
    if record.type != RECORD_TYPE_TXT:
        return False
    pattern = rf"node_id={re.escape(node_id)}(?=$|[\"\s])"
    return re.search(pattern, record.value) is not None


def nodes_equal(a: Node, b: Node) -> bool:
    """Compare the fields that affect DNS state.

    Tags are ignored and addresses are compared in order.
    """
    if a.name != b.name or a.online != b.online or len(a.addresses) != len(b.addresses):
        return False
    for left, right in zip(a.addresses, b.addresses):
        if left != right:
            return False
    return True


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp from the Tailscale API."""
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def node_from_device(device: Dict[str, Any], now: Optional[datetime] = None) -> Node:
    """Convert a raw Tailscale device payload into a Node."""
    now = now or datetime.now(timezone.utc)
    last_seen = parse_timestamp(device.get("lastSeen"))
    online = last_seen is not None and now - last_seen < ONLINE_WINDOW

    hostname = str(device.get("hostname") or "")
    addresses = [str(a) for a in device.get("addresses") or [] if a]
    tags = [str(t) for t in device.get("tags") or [] if t]

    return Node(
        id=str(device.get("id") or ""),
        name=derive_node_name(str(device.get("name") or ""), hostname),
        hostname=hostname,
        addresses=addresses,
        tags=tags,
        online=online,
        last_seen=last_seen,
    )
