"""Tests for the Dexcom API client."""

from datetime import UTC, datetime
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from sugarwatch.services.dexcom_client import (
    PRODUCTION_BASE_URL,
    SANDBOX_BASE_URL,
    DexcomApiError,
    DexcomAuthError,
    DexcomClient,
    DexcomConnectionError,
    DexcomTokenExpiredError,
    format_dexcom_time,
    parse_dexcom_time,
    parse_egv,
)


def make_client(handler) -> DexcomClient:
    return DexcomClient(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://localhost/callback",
        use_sandbox=True,
        transport=httpx.MockTransport(handler),
    )


class TestTimeFormatting:
    def test_format_drops_offset_and_millis(self):
        value = datetime(2026, 5, 1, 10, 30, 15, 123456, tzinfo=UTC)
        assert format_dexcom_time(value) == "2026-05-01T10:30:15"

    def test_parse_naive_is_utc(self):
        assert parse_dexcom_time("2026-05-01T10:30:15") == datetime(
            2026, 5, 1, 10, 30, 15, tzinfo=UTC
        )

    def test_parse_with_offset(self):
        parsed = parse_dexcom_time("2026-05-01T12:30:15+02:00")
        assert parsed.astimezone(UTC) == datetime(2026, 5, 1, 10, 30, 15, tzinfo=UTC)


class TestParseEgv:
    def test_full_record(self):
        egv = parse_egv(
            {
                "recordId": "abc",
                "systemTime": "2026-05-01T10:30:00",
                "displayTime": "2026-05-01T06:30:00-04:00",
                "value": 112,
                "unit": "mg/dL",
                "trend": "flat",
                "trendRate": 0.1,
            }
        )
        assert egv.record_id == "abc"
        assert egv.value == 112.0
        assert egv.trend == "flat"
        assert egv.system_time == datetime(2026, 5, 1, 10, 30, tzinfo=UTC)

    def test_record_without_value_skipped(self):
        assert parse_egv({"systemTime": "2026-05-01T10:30:00", "value": None}) is None


class TestAuthorizeUrl:
    def test_sandbox_url(self):
        client = DexcomClient(client_id="cid", redirect_uri="http://cb", use_sandbox=True)
        url = urlparse(client.build_authorize_url("state-123"))
        query = parse_qs(url.query)

        assert f"{url.scheme}://{url.netloc}" == SANDBOX_BASE_URL
        assert url.path == "/v2/oauth2/login"
        assert query["client_id"] == ["cid"]
        assert query["state"] == ["state-123"]
        assert query["response_type"] == ["code"]
        assert query["scope"] == ["offline_access"]

    def test_production_url(self):
        client = DexcomClient(use_sandbox=False)
        assert client.base_url == PRODUCTION_BASE_URL


class TestTokenExchange:
    async def test_exchange_code(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(
                200,
                json={
                    "access_token": "access-1",
                    "refresh_token": "refresh-1",
                    "expires_in": 7200,
                },
            )

        token_set = await make_client(handler).exchange_code("the-code")

        assert seen["path"] == "/v2/oauth2/token"
        assert seen["form"]["grant_type"] == ["authorization_code"]
        assert seen["form"]["code"] == ["the-code"]
        assert seen["form"]["client_secret"] == ["client-secret"]
        assert token_set.access_token == "access-1"
        assert token_set.refresh_token == "refresh-1"
        assert token_set.expires_at > datetime.now(UTC)

    async def test_refresh_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(DexcomAuthError, match="invalid_grant"):
            await make_client(handler).refresh("stale")

    async def test_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable")

        with pytest.raises(DexcomConnectionError):
            await make_client(handler).refresh("token")

    async def test_non_json_success_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(DexcomApiError, match="Malformed token response"):
            await make_client(handler).exchange_code("code")


class TestGetEgvs:
    async def test_fetch_records(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(
                200,
                json={
                    "records": [
                        {"systemTime": "2026-05-01T10:35:00", "value": 120, "trend": "flat"},
                        {"systemTime": "2026-05-01T10:30:00", "value": 118},
                        {"systemTime": "2026-05-01T10:25:00", "value": None},
                    ]
                },
            )

        egvs = await make_client(handler).get_egvs(
            "access",
            datetime(2026, 5, 1, 10, 0, tzinfo=UTC),
            datetime(2026, 5, 1, 11, 0, tzinfo=UTC),
        )

        assert seen["params"] == {
            "startDate": "2026-05-01T10:00:00",
            "endDate": "2026-05-01T11:00:00",
        }
        assert seen["auth"] == "Bearer access"
        assert [e.value for e in egvs] == [120, 118]

    async def test_unauthorized(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401)

        with pytest.raises(DexcomTokenExpiredError):
            await make_client(handler).get_egvs(
                "expired", datetime.now(UTC), datetime.now(UTC)
            )

    async def test_server_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "server"})

        with pytest.raises(DexcomApiError) as exc_info:
            await make_client(handler).get_egvs(
                "access", datetime.now(UTC), datetime.now(UTC)
            )
        assert exc_info.value.status_code == 500

    async def test_non_json_success_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(DexcomApiError, match="Malformed EGV response"):
            await make_client(handler).get_egvs(
                "access", datetime.now(UTC), datetime.now(UTC)
            )
