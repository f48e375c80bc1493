"""AWS Route53 DNS provider."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..models import SUPPORTED_RECORD_TYPES, DNSProviderError, DNSRecord
from .base import DEFAULT_TIMEOUT, DNSProvider

logger = logging.getLogger(__name__)


class Route53DNSProvider(DNSProvider):
    """Route53 hosted zone provider.

    Credentials come from the usual AWS chain (environment, profile, instance
    role). ``client`` may be passed in to bypass session setup.
    """

    def __init__(
        self,
        zone_id: str,
        profile: str = "",
        region: str = "",
        timeout_seconds: float = DEFAULT_TIMEOUT,
        client: Optional[Any] = None,
    ):
        if not zone_id:
            raise ValueError("Route53 hosted zone ID is required")
        self._zone_id = zone_id
        if client is None:
            session = boto3.Session(
                profile_name=profile or None,
                region_name=region or None,
            )
            client = session.client(
                "route53",
                config=Config(
                    connect_timeout=timeout_seconds,
                    read_timeout=timeout_seconds,
                    retries={"max_attempts": 1},
                ),
            )
        self._client = client

    @property
    def name(self) -> str:
        return "Route53"

    def list_records(self, zone: str) -> List[DNSRecord]:
        records: List[DNSRecord] = []
        try:
            paginator = self._client.get_paginator("list_resource_record_sets")
            for page in paginator.paginate(HostedZoneId=self._zone_id):
                for rrs in page.get("ResourceRecordSets", []):
                    if rrs.get("Type") not in SUPPORTED_RECORD_TYPES:
                        continue
                    name = str(rrs.get("Name", "")).rstrip(".")
                    for rr in rrs.get("ResourceRecords", []):
                        records.append(
                            DNSRecord(
                                name=name,
                                type=rrs["Type"],
                                value=rr.get("Value", ""),
                                ttl=int(rrs.get("TTL", 0)),
                            )
                        )
        except (BotoCoreError, ClientError) as e:
            raise DNSProviderError(f"Failed to list {self.name} records: {e}") from e
        return records

    def _change(self, action: str, record: DNSRecord) -> None:
        try:
            self._client.change_resource_record_sets(
                HostedZoneId=self._zone_id,
                ChangeBatch={
                    "Changes": [
                        {
                            "Action": action,
                            "ResourceRecordSet": {
                                "Name": record.name,
                                "Type": record.type,
                                "TTL": record.ttl,
                                "ResourceRecords": [{"Value": record.value}],
                            },
                        }
                    ]
                },
            )
        except (BotoCoreError, ClientError) as e:
            raise DNSProviderError(
                f"{self.name} {action} failed for {record.type} {record.name}: {e}"
            ) from e
        logger.debug(f"{self.name} {action}: {record.type} {record.name} -> {record.value}")

    def create_record(self, zone: str, record: DNSRecord) -> None:
        self._change("CREATE", record)

    def update_record(self, zone: str, record: DNSRecord) -> None:
        self._change("UPSERT", record)

    def delete_record(self, zone: str, record: DNSRecord) -> None:
        self._change("DELETE", record)
