"""Unit tests for the Tailscale API client."""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from dnsscale.models import SnapshotError
from dnsscale.tailscale import TailscaleClient

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_client() -> TailscaleClient:
    return TailscaleClient(api_key="tskey-api-xyz", tailnet="example.com")


def api_response(payload, status_code: int = 200, reason: str = "OK") -> MagicMock:
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.reason = reason
    mock_response.json.return_value = payload
    return mock_response


def test_session_headers() -> None:
    client = make_client()

    assert client._session.headers["Authorization"] == "Bearer tskey-api-xyz"
    assert client._session.headers["Content-Type"] == "application/json"


def test_devices_url_escapes_tailnet() -> None:
    client = TailscaleClient(api_key="k", tailnet="user@example.com")

    assert client.devices_url == "https://api.tailscale.com/api/v2/tailnet/user%40example.com/devices"


def test_list_authorized_nodes_filters_unauthorized_devices() -> None:
    client = make_client()
    payload = {
        "devices": [
            {
                "id": "1",
                "name": "web.tail4cf751.ts.net",
                "hostname": "web",
                "addresses": ["100.64.0.1"],
                "tags": ["tag:prod"],
                "authorized": True,
                "lastSeen": "2026-01-01T11:59:00Z",
            },
            {"id": "2", "name": "pending", "authorized": False},
            {"name": "no-id", "authorized": True},
            "garbage",
        ]
    }

    with patch.object(client._session, "get") as mock_get:
        mock_get.return_value = api_response(payload)

        nodes = client.list_authorized_nodes(timeout=5.0, now=NOW)

        mock_get.assert_called_once_with(client.devices_url, timeout=5.0)

    assert [n.id for n in nodes] == ["1"]
    assert nodes[0].name == "web"
    assert nodes[0].addresses == ["100.64.0.1"]
    assert nodes[0].tags == ["tag:prod"]
    assert nodes[0].online is True


def test_list_authorized_nodes_empty_tailnet() -> None:
    client = make_client()

    with patch.object(client._session, "get") as mock_get:
        mock_get.return_value = api_response({"devices": []})

        assert client.list_authorized_nodes(now=NOW) == []


def test_non_200_raises_snapshot_error() -> None:
    client = make_client()

    with patch.object(client._session, "get") as mock_get:
        mock_get.return_value = api_response({}, status_code=401, reason="Unauthorized")

        with pytest.raises(SnapshotError, match="status 401: Unauthorized"):
            client.list_authorized_nodes(now=NOW)


def test_request_exception_raises_snapshot_error() -> None:
    client = make_client()

    with patch.object(client._session, "get") as mock_get:
        mock_get.side_effect = requests.exceptions.Timeout("timed out")

        with pytest.raises(SnapshotError, match="timed out"):
            client.list_authorized_nodes(now=NOW)


def test_invalid_json_raises_snapshot_error() -> None:
    client = make_client()

    with patch.object(client._session, "get") as mock_get:
        mock_response = api_response(None)
        mock_response.json.side_effect = json.JSONDecodeError("Invalid", "", 0)
        mock_get.return_value = mock_response

        with pytest.raises(SnapshotError, match="decode"):
            client.list_authorized_nodes(now=NOW)


def test_missing_devices_list_raises_snapshot_error() -> None:
    client = make_client()

    with patch.object(client._session, "get") as mock_get:
        mock_get.return_value = api_response({"message": "not what we expected"})

        with pytest.raises(SnapshotError, match="devices"):
            client.list_authorized_nodes(now=NOW)
