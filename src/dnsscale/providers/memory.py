"""In-memory DNS provider used by tests."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..models import DNSProviderError, DNSRecord
from .base import DNSProvider


class InMemoryDNSProvider(DNSProvider):
    """Dict-backed provider with call tracking and injectable failures.

    ``fail_ops`` makes every call of the named operations ("list", "create",
    "update", "delete") raise; ``fail_records`` makes any write touching one of
    those records raise.
    """

    def __init__(
        self,
        records: Optional[Iterable[Tuple[str, DNSRecord]]] = None,
        fail_ops: Optional[Set[str]] = None,
        fail_records: Optional[Set[DNSRecord]] = None,
    ):
        self._zones: Dict[str, List[DNSRecord]] = {}
        self._lock = threading.Lock()
        self.calls: List[Tuple[str, str, Optional[DNSRecord]]] = []
        self.fail_ops: Set[str] = set(fail_ops or ())
        self.fail_records: Set[DNSRecord] = set(fail_records or ())
        for zone, record in records or []:
            self._zones.setdefault(zone, []).append(record)

    @property
    def name(self) -> str:
        return "InMemory"

    def records(self, zone: str) -> List[DNSRecord]:
        with self._lock:
            return list(self._zones.get(zone, []))

    def calls_for(self, op: str) -> List[DNSRecord]:
        with self._lock:
            return [record for name, _, record in self.calls if name == op and record]

    def list_records(self, zone: str) -> List[DNSRecord]:
        self._check("list", zone, None)
        return self.records(zone)

    def create_record(self, zone: str, record: DNSRecord) -> None:
        self._check("create", zone, record)
        with self._lock:
            self._zones.setdefault(zone, []).append(record)

    def update_record(self, zone: str, record: DNSRecord) -> None:
        self._check("update", zone, record)
        with self._lock:
            existing = self._zones.setdefault(zone, [])
            kept = [r for r in existing if (r.name, r.type) != (record.name, record.type)]
            kept.append(record)
            self._zones[zone] = kept

    def delete_record(self, zone: str, record: DNSRecord) -> None:
        self._check("delete", zone, record)
        with self._lock:
            existing = self._zones.get(zone, [])
            self._zones[zone] = [
                r
                for r in existing
                if (r.name, r.type, r.value) != (record.name, record.type, record.value)
            ]

    def _check(self, op: str, zone: str, record: Optional[DNSRecord]) -> None:
        with self._lock:
            self.calls.append((op, zone, record))
        if op in self.fail_ops:
            raise DNSProviderError(f"injected {op} failure")
        if record is not None and record in self.fail_records:
            raise DNSProviderError(f"injected {op} failure for {record.name} {record.type}")
