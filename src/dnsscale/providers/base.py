"""DNS provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from ..models import DNSRecord

DEFAULT_TIMEOUT = 30.0
USER_AGENT = "dnsscale/1.0"


class DNSProvider(ABC):
    """Abstract base class for DNS providers.

    Every method raises ``DNSProviderError`` on failure and must be safe to call
    repeatedly with the same arguments.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""
        pass

    @abstractmethod
    def list_records(self, zone: str) -> List[DNSRecord]:
        """Get all A, AAAA and TXT records in the zone."""
        pass

    @abstractmethod
    def create_record(self, zone: str, record: DNSRecord) -> None:
        """Create a DNS record."""
        pass

    @abstractmethod
    def update_record(self, zone: str, record: DNSRecord) -> None:
        """Create or replace the record with the same name and type."""
        pass

    @abstractmethod
    def delete_record(self, zone: str, record: DNSRecord) -> None:
        """Delete a DNS record. Deleting a missing record is not an error."""
        pass
