"""AdGuard Home DNS rewrite provider."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

import requests
from requests.auth import HTTPBasicAuth

from ..models import (
    RECORD_TYPE_A,
    RECORD_TYPE_AAAA,
    RECORD_TTL,
    DNSProviderError,
    DNSRecord,
    in_zone,
    record_type_for_address,
)
from .base import DEFAULT_TIMEOUT, USER_AGENT, DNSProvider

logger = logging.getLogger(__name__)


class AdGuardDNSProvider(DNSProvider):
    """AdGuard Home DNS rewrites. Only address records can be stored."""

    def __init__(
        self,
        url: str,
        username: str = "",
        password: str = "",
        timeout_seconds: float = DEFAULT_TIMEOUT,
    ):
        if not url:
            raise ValueError("AdGuard Home URL is required")
        self._url = url.rstrip("/")
        self._timeout = timeout_seconds
        self._auth = HTTPBasicAuth(username, password) if username and password else None
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT})
        if self._auth:
            self._session.auth = self._auth

    @property
    def name(self) -> str:
        return "AdGuard Home"

    def _post(self, path: str, data: Dict[str, Any]) -> None:
        try:
            response = self._session.post(f"{self._url}{path}", json=data, timeout=self._timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise DNSProviderError(f"{self.name} request to {path} failed: {e}") from e

    def list_records(self, zone: str) -> List[DNSRecord]:
        try:
            response = self._session.get(
                f"{self._url}/control/rewrite/list", timeout=self._timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise DNSProviderError(f"Failed to get records from {self.name}: {e}") from e
        except (json.JSONDecodeError, ValueError) as e:
            raise DNSProviderError(f"Failed to decode {self.name} response: {e}") from e

        records = []
        for r in data if isinstance(data, list) else []:
            domain = r.get("domain") if isinstance(r, dict) else None
            answer = r.get("answer") if isinstance(r, dict) else None
            if not isinstance(domain, str) or not isinstance(answer, str):
                logger.warning(f"Skipping malformed rewrite: {r}")
                continue
            if not in_zone(domain, zone):
                continue
            records.append(
                DNSRecord(
                    name=domain,
                    type=record_type_for_address(answer),
                    value=answer,
                    ttl=RECORD_TTL,
                )
            )
        return records

    def create_record(self, zone: str, record: DNSRecord) -> None:
        self._require_address(record)
        self._post("/control/rewrite/add", {"domain": record.name, "answer": record.value})
        logger.debug(f"Added {self.name} rewrite: {record.name} -> {record.value}")

    def update_record(self, zone: str, record: DNSRecord) -> None:
        self._require_address(record)

        already_present = False
        for existing in self.list_records(zone):
            if existing.name != record.name or existing.type != record.type:
                continue
            if existing.value == record.value:
                already_present = True
                continue
            self.delete_record(zone, existing)

        if not already_present:
            self.create_record(zone, record)

    def delete_record(self, zone: str, record: DNSRecord) -> None:
        if record.type not in (RECORD_TYPE_A, RECORD_TYPE_AAAA):
            return
        self._post("/control/rewrite/delete", {"domain": record.name, "answer": record.value})
        logger.debug(f"Deleted {self.name} rewrite: {record.name} -> {record.value}")

    def _require_address(self, record: DNSRecord) -> None:
        if record.type not in (RECORD_TYPE_A, RECORD_TYPE_AAAA):
            raise DNSProviderError(
                f"{self.name} only supports A and AAAA rewrites, got {record.type}"
            )
