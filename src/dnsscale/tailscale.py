"""Tailscale API client: the node snapshot source."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import quote

import requests

from .models import Node, SnapshotError, node_from_device
from .providers.base import DEFAULT_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)

TAILSCALE_API_URL = "https://api.tailscale.com"


class NodeSource(ABC):
    """Abstract base class for node snapshot sources."""

    @abstractmethod
    def list_authorized_nodes(self, timeout: float = DEFAULT_TIMEOUT) -> List[Node]:
        """Return the current authorized nodes. Raises SnapshotError on failure."""
        pass


class TailscaleClient(NodeSource):
    """Lists the authorized devices of a tailnet."""

    def __init__(self, api_key: str, tailnet: str, base_url: str = TAILSCALE_API_URL):
        self._tailnet = tailnet
        self._url = base_url.rstrip("/")
        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            }
        )

    @property
    def devices_url(self) -> str:
        # Tailnet names may be email addresses.
        return f"{self._url}/api/v2/tailnet/{quote(self._tailnet, safe='')}/devices"

    def list_authorized_nodes(
        self, timeout: float = DEFAULT_TIMEOUT, now: Optional[datetime] = None
    ) -> List[Node]:
        """Fetch the current device list, keeping only authorized devices.

        Raises:
            SnapshotError: On network failure, a non-200 response or an
                undecodable body.
        """
        logger.debug(f"Calling Tailscale API: {self.devices_url}")
        try:
            response = self._session.get(self.devices_url, timeout=timeout)
        except requests.exceptions.RequestException as e:
            raise SnapshotError(f"failed to make API request: {e}") from e

        if response.status_code != 200:
            raise SnapshotError(
                f"API request failed with status {response.status_code}: {response.reason}"
            )

        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise SnapshotError(f"failed to decode API response: {e}") from e

        devices = payload.get("devices") if isinstance(payload, dict) else None
        if not isinstance(devices, list):
            raise SnapshotError("unexpected API response: missing 'devices' list")

        now = now or datetime.now(timezone.utc)
        nodes: List[Node] = []
        for device in devices:
            if not isinstance(device, dict):
                logger.debug(f"Skipping non-dict device entry: {device}")
                continue
            if not device.get("authorized"):
                logger.debug(
                    f"Skipping unauthorized device: {device.get('name')} (id={device.get('id')})"
                )
                continue

            node = node_from_device(device, now=now)
            if not node.id:
                logger.warning(f"Skipping device without id: {device.get('name')}")
                continue
            nodes.append(node)
            logger.debug(
                f"Found device: {node.name} (id={node.id}, addresses={node.addresses}, "
                f"online={node.online}, tags={node.tags})"
            )

        logger.info(
            f"Retrieved devices from Tailscale API: {len(devices)} total, "
            f"{len(nodes)} authorized"
        )
        return nodes
