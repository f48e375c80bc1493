"""Cloudflare DNS provider."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from ..models import SUPPORTED_RECORD_TYPES, DNSProviderError, DNSRecord
from .base import DEFAULT_TIMEOUT, USER_AGENT, DNSProvider

logger = logging.getLogger(__name__)

CLOUDFLARE_API_URL = "https://api.cloudflare.com/client/v4"
PAGE_SIZE = 100


class CloudflareDNSProvider(DNSProvider):
    """Cloudflare API v4 provider. Records are never proxied."""

    def __init__(
        self,
        api_token: str,
        zone_id: str,
        base_url: str = CLOUDFLARE_API_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT,
    ):
        if not api_token or not zone_id:
            raise ValueError("Cloudflare API token and zone ID are required")
        self._zone_id = zone_id
        self._url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            }
        )

    @property
    def name(self) -> str:
        return "Cloudflare"

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = self._session.request(
                method,
                f"{self._url}{endpoint}",
                params=params,
                json=body,
                timeout=self._timeout,
            )
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise DNSProviderError(f"{self.name} request failed: {e}") from e
        except (json.JSONDecodeError, ValueError) as e:
            raise DNSProviderError(f"Failed to decode {self.name} response: {e}") from e

        if not isinstance(data, dict) or not data.get("success"):
            errors = data.get("errors") if isinstance(data, dict) else None
            if errors:
                first = errors[0]
                raise DNSProviderError(
                    f"Cloudflare API error: {first.get('message')} (code: {first.get('code')})"
                )
            raise DNSProviderError("Cloudflare API request failed")
        return data

    def _find(self, record: DNSRecord) -> List[Dict[str, Any]]:
        data = self._request(
            "GET",
            f"/zones/{self._zone_id}/dns_records",
            params={"name": record.name, "type": record.type},
        )
        result = data.get("result") or []
        return [r for r in result if isinstance(r, dict)]

    def _payload(self, record: DNSRecord) -> Dict[str, Any]:
        return {
            "name": record.name,
            "type": record.type,
            "content": record.value,
            "ttl": record.ttl,
            "proxied": False,
        }

    def list_records(self, zone: str) -> List[DNSRecord]:
        records: List[DNSRecord] = []
        page = 1
        while True:
            data = self._request(
                "GET",
                f"/zones/{self._zone_id}/dns_records",
                params={"page": page, "per_page": PAGE_SIZE},
            )
            for r in data.get("result") or []:
                if not isinstance(r, dict) or r.get("type") not in SUPPORTED_RECORD_TYPES:
                    continue
                records.append(
                    DNSRecord(
                        name=str(r.get("name") or ""),
                        type=str(r["type"]),
                        value=str(r.get("content") or ""),
                        ttl=int(r.get("ttl") or 0),
                    )
                )

            info = data.get("result_info") or {}
            total_pages = int(info.get("total_pages") or 1)
            if page >= total_pages:
                break
            page += 1
        return records

    def create_record(self, zone: str, record: DNSRecord) -> None:
        self._request("POST", f"/zones/{self._zone_id}/dns_records", body=self._payload(record))
        logger.debug(f"Created {self.name} record: {record.type} {record.name} -> {record.value}")

    def update_record(self, zone: str, record: DNSRecord) -> None:
        existing = self._find(record)
        if not existing:
            self.create_record(zone, record)
            return

        record_id = existing[0].get("id")
        self._request(
            "PUT",
            f"/zones/{self._zone_id}/dns_records/{record_id}",
            body=self._payload(record),
        )
        logger.debug(f"Updated {self.name} record: {record.type} {record.name} -> {record.value}")

    def delete_record(self, zone: str, record: DNSRecord) -> None:
        target = next((r for r in self._find(record) if r.get("content") == record.value), None)
        if target is None:
            return

        self._request("DELETE", f"/zones/{self._zone_id}/dns_records/{target.get('id')}")
        logger.debug(f"Deleted {self.name} record: {record.type} {record.name} -> {record.value}")
