"""Unit tests for CloudflareDNSProvider."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from dnsscale.models import DNSProviderError, DNSRecord
from dnsscale.providers.cloudflare import CloudflareDNSProvider

ZONE = "example.com"
RECORDS_URL = "https://api.cloudflare.com/client/v4/zones/zone123/dns_records"


def make_provider() -> CloudflareDNSProvider:
    return CloudflareDNSProvider(api_token="token", zone_id="zone123")


def api_response(result=None, success: bool = True, **extra) -> MagicMock:
    mock_response = MagicMock()
    body = {"success": success, "result": result if result is not None else []}
    body.update(extra)
    mock_response.json.return_value = body
    return mock_response


def cf_record(record_id: str, name: str, rtype: str, content: str, ttl: int = 300) -> dict:
    return {"id": record_id, "name": name, "type": rtype, "content": content, "ttl": ttl}


class TestCloudflareConstruction:
    """Tests for Cloudflare provider construction."""

    def test_session_headers(self) -> None:
        provider = make_provider()

        assert provider._session.headers["Authorization"] == "Bearer token"
        assert provider._session.headers["Content-Type"] == "application/json"
        assert provider.name == "Cloudflare"

    def test_missing_credentials_rejected(self) -> None:
        with pytest.raises(ValueError):
            CloudflareDNSProvider(api_token="", zone_id="zone123")
        with pytest.raises(ValueError):
            CloudflareDNSProvider(api_token="token", zone_id="")


class TestCloudflareListRecords:
    """Tests for Cloudflare list_records functionality."""

    def test_list_records_filters_unsupported_types(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "request") as mock_request:
            mock_request.return_value = api_response(
                [
                    cf_record("1", "web.example.com", "A", "100.64.0.1"),
                    cf_record("2", "web.example.com", "TXT", '"dnsscale-managed node_id=1"'),
                    cf_record("3", "alias.example.com", "CNAME", "web.example.com"),
                ],
                result_info={"page": 1, "total_pages": 1},
            )

            records = provider.list_records(ZONE)

            assert records == [
                DNSRecord("web.example.com", "A", "100.64.0.1", 300),
                DNSRecord("web.example.com", "TXT", '"dnsscale-managed node_id=1"', 300),
            ]
            mock_request.assert_called_once_with(
                "GET",
                RECORDS_URL,
                params={"page": 1, "per_page": 100},
                json=None,
                timeout=30.0,
            )

    def test_list_records_follows_pagination(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "request") as mock_request:
            mock_request.side_effect = [
                api_response(
                    [cf_record("1", "a.example.com", "A", "100.64.0.1")],
                    result_info={"page": 1, "total_pages": 2},
                ),
                api_response(
                    [cf_record("2", "b.example.com", "A", "100.64.0.2")],
                    result_info={"page": 2, "total_pages": 2},
                ),
            ]

            records = provider.list_records(ZONE)

            assert [r.name for r in records] == ["a.example.com", "b.example.com"]
            assert mock_request.call_args_list[1].kwargs["params"]["page"] == 2

    def test_list_records_raises_on_api_error(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "request") as mock_request:
            mock_request.return_value = api_response(
                success=False, errors=[{"code": 9109, "message": "Invalid access token"}]
            )

            with pytest.raises(
                DNSProviderError, match=r"Invalid access token \(code: 9109\)"
            ):
                provider.list_records(ZONE)

    def test_list_records_raises_on_unsuccessful_response_without_errors(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "request") as mock_request:
            mock_request.return_value = api_response(success=False)

            with pytest.raises(DNSProviderError, match="Cloudflare API request failed"):
                provider.list_records(ZONE)

    def test_list_records_raises_on_transport_error(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "request") as mock_request:
            mock_request.side_effect = requests.exceptions.ConnectionError("refused")

            with pytest.raises(DNSProviderError, match="refused"):
                provider.list_records(ZONE)

    def test_list_records_raises_on_invalid_json(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "request") as mock_request:
            mock_response = MagicMock()
            mock_response.json.side_effect = json.JSONDecodeError("Invalid", "", 0)
            mock_request.return_value = mock_response

            with pytest.raises(DNSProviderError):
                provider.list_records(ZONE)


class TestCloudflareWrites:
    """Tests for Cloudflare create, update and delete."""

    def test_update_record_puts_existing_record(self) -> None:
        provider = make_provider()
        record = DNSRecord("web.example.com", "A", "100.64.0.9", 300)

        with patch.object(provider._session, "request") as mock_request:
            mock_request.side_effect = [
                api_response([cf_record("abc", "web.example.com", "A", "100.64.0.1")]),
                api_response({}),
            ]

            provider.update_record(ZONE, record)

            find_call, put_call = mock_request.call_args_list
            assert find_call.kwargs["params"] == {"name": "web.example.com", "type": "A"}
            assert put_call.args == ("PUT", f"{RECORDS_URL}/abc")
            assert put_call.kwargs["json"] == {
                "name": "web.example.com",
                "type": "A",
                "content": "100.64.0.9",
                "ttl": 300,
                "proxied": False,
            }

    def test_update_record_creates_when_missing(self) -> None:
        provider = make_provider()
        record = DNSRecord("web.example.com", "AAAA", "fd7a::1", 300)

        with patch.object(provider._session, "request") as mock_request:
            mock_request.side_effect = [api_response([]), api_response({})]

            provider.update_record(ZONE, record)

            post_call = mock_request.call_args_list[1]
            assert post_call.args == ("POST", RECORDS_URL)
            assert post_call.kwargs["json"]["content"] == "fd7a::1"

    def test_delete_record_prefers_matching_content(self) -> None:
        provider = make_provider()
        record = DNSRecord("web.example.com", "A", "100.64.0.2", 300)

        with patch.object(provider._session, "request") as mock_request:
            mock_request.side_effect = [
                api_response(
                    [
                        cf_record("first", "web.example.com", "A", "100.64.0.1"),
                        cf_record("match", "web.example.com", "A", "100.64.0.2"),
                    ]
                ),
                api_response({}),
            ]

            provider.delete_record(ZONE, record)

            assert mock_request.call_args_list[1].args == ("DELETE", f"{RECORDS_URL}/match")

    def test_delete_record_ignores_entry_with_other_content(self) -> None:
        """Test a same-name record holding another value is left alone."""
        provider = make_provider()
        record = DNSRecord("web.example.com", "A", "100.64.0.1", 300)

        with patch.object(provider._session, "request") as mock_request:
            mock_request.return_value = api_response(
                [cf_record("new", "web.example.com", "A", "100.64.0.9")]
            )

            provider.delete_record(ZONE, record)

            assert [c.args[0] for c in mock_request.call_args_list] == ["GET"]

    def test_delete_missing_record_is_noop(self) -> None:
        provider = make_provider()

        with patch.object(provider._session, "request") as mock_request:
            mock_request.return_value = api_response([])

            provider.delete_record(ZONE, DNSRecord("web.example.com", "A", "100.64.0.1"))

            mock_request.assert_called_once()
