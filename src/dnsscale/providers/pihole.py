"""Pi-hole custom DNS provider."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests

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

API_PATH = "/admin/api.php"


class PiholeDNSProvider(DNSProvider):
    """Pi-hole local DNS records (A and AAAA only).

    Pi-hole has no TXT support, so ownership markers never land here and the
    deletion sweep finds nothing to remove.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str,
        tls_insecure_skip_verify: bool = False,
        timeout_seconds: float = DEFAULT_TIMEOUT,
    ):
        if not base_url:
            raise ValueError("Pi-hole base URL is required")
        if not api_token:
            raise ValueError("Pi-hole API token is required")
        self._url = base_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout_seconds
        self._session = requests.Session()
        self._session.verify = not tls_insecure_skip_verify
        self._session.headers.update({"User-Agent": USER_AGENT})

    @property
    def name(self) -> str:
        return "Pi-hole"

    def _request(self, method: str, params: Dict[str, str]) -> Any:
        params = dict(params, auth=self._api_token)
        try:
            if method == "GET":
                response = self._session.get(
                    f"{self._url}{API_PATH}", params=params, timeout=self._timeout
                )
            else:
                response = self._session.post(
                    f"{self._url}{API_PATH}", data=params, timeout=self._timeout
                )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise DNSProviderError(f"{self.name} request failed: {e}") from e
        except (json.JSONDecodeError, ValueError) as e:
            raise DNSProviderError(f"Failed to decode {self.name} response: {e}") from e

    def _check_status(self, data: Any, tolerate: Optional[str] = None) -> None:
        status = data.get("status") if isinstance(data, dict) else None
        if status == "success":
            return
        error = str(data.get("error") or "") if isinstance(data, dict) else ""
        if tolerate and tolerate in error:
            return
        raise DNSProviderError(f"Pi-hole API error: {error or data}")

    def list_records(self, zone: str) -> List[DNSRecord]:
        data = self._request("GET", {"customdns": "", "action": "get"})
        entries = data.get("data") if isinstance(data, dict) else None

        records: List[DNSRecord] = []
        for entry in entries or []:
            if not isinstance(entry, list) or len(entry) < 2:
                logger.debug(f"Skipping malformed Pi-hole entry: {entry}")
                continue
            domain, ip_address = str(entry[0]), str(entry[1])
            if not in_zone(domain, zone):
                continue
            records.append(
                DNSRecord(
                    name=domain,
                    type=record_type_for_address(ip_address),
                    value=ip_address,
                    ttl=RECORD_TTL,
                )
            )
        return records

    def create_record(self, zone: str, record: DNSRecord) -> None:
        # Pi-hole has no separate create; add always replaces.
        self.update_record(zone, record)

    def update_record(self, zone: str, record: DNSRecord) -> None:
        if record.type not in (RECORD_TYPE_A, RECORD_TYPE_AAAA):
            raise DNSProviderError(f"Pi-hole only supports A and AAAA records, got {record.type}")

        for existing in self.list_records(zone):
            if existing.name == record.name and existing.type == record.type:
                self.delete_record(zone, existing)
                break

        data = self._request(
            "POST", {"customdns": "", "action": "add", "domain": record.name, "ip": record.value}
        )
        self._check_status(data)
        logger.debug(f"Added {self.name} record: {record.name} -> {record.value}")

    def delete_record(self, zone: str, record: DNSRecord) -> None:
        if record.type not in (RECORD_TYPE_A, RECORD_TYPE_AAAA):
            return

        data = self._request(
            "POST",
            {"customdns": "", "action": "delete", "domain": record.name, "ip": record.value},
        )
        self._check_status(data, tolerate="not found")
        logger.debug(f"Deleted {self.name} record: {record.name} -> {record.value}")
