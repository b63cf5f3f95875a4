"""Dexcom developer API client.

Wraps the OAuth2 token endpoint and the v3 EGV (estimated glucose
value) listing with an httpx AsyncClient.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx

from sugarwatch.config import settings
from sugarwatch.logging_config import get_logger

logger = get_logger(__name__)

SANDBOX_BASE_URL = "https://sandbox-api.dexcom.com"
PRODUCTION_BASE_URL = "https://api.dexcom.com"

TOKEN_PATH = "/v2/oauth2/token"
LOGIN_PATH = "/v2/oauth2/login"
EGVS_PATH = "/v3/users/self/egvs"


class DexcomSyncError(Exception):
    """Base exception for Dexcom sync errors."""

    pass


class DexcomAuthError(DexcomSyncError):
    """Token exchange or refresh was rejected."""

    pass


class DexcomTokenExpiredError(DexcomAuthError):
    """The API rejected the access token (HTTP 401)."""

    pass


class DexcomConnectionError(DexcomSyncError):
    """The Dexcom API could not be reached."""

    pass


class DexcomApiError(DexcomSyncError):
    """The Dexcom API returned an unexpected error response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class DexcomTokenSet:
    """Result of an authorization-code or refresh-token exchange."""

    access_token: str
    refresh_token: str
    expires_at: datetime


@dataclass(frozen=True)
class DexcomEgv:
    """One estimated glucose value record."""

    record_id: str | None
    value: float
    unit: str
    trend: str | None
    trend_rate: float | None
    system_time: datetime
    display_time: datetime | None


def format_dexcom_time(value: datetime) -> str:
    """Format a datetime as the API expects: UTC, `YYYY-MM-DDThh:mm:ss`."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S")


def parse_dexcom_time(value: str) -> datetime:
    """Parse an API timestamp; naive values are UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_egv(record: dict[str, Any]) -> DexcomEgv | None:
    """Convert a raw EGV record, skipping records without a usable value."""
    value = record.get("value")
    time_str = record.get("systemTime") or record.get("displayTime")
    if value is None or not time_str:
        return None

    display_time = record.get("displayTime")
    return DexcomEgv(
        record_id=record.get("recordId"),
        value=float(value),
        unit=record.get("unit") or "mg/dL",
        trend=record.get("trend"),
        trend_rate=record.get("trendRate"),
        system_time=parse_dexcom_time(time_str),
        display_time=parse_dexcom_time(display_time) if display_time else None,
    )


def _json_object(response: httpx.Response, what: str) -> dict:
    """Decode a successful response body, which must be a JSON object."""
    try:
        data = response.json()
    except ValueError as e:
        raise DexcomApiError(
            f"Malformed {what} response", status_code=response.status_code
        ) from e
    if not isinstance(data, dict):
        raise DexcomApiError(
            f"Malformed {what} response", status_code=response.status_code
        )
    return data


def _error_description(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        return (
            data.get("error_description")
            or data.get("error")
            or response.reason_phrase
            or f"HTTP {response.status_code}"
        )
    return response.reason_phrase or f"HTTP {response.status_code}"


class DexcomClient:
    """Async client for the Dexcom developer API.

    Pass `transport` to substitute an `httpx.MockTransport` in tests.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        use_sandbox: bool | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id if client_id is not None else settings.dexcom_client_id
        self.client_secret = (
            client_secret if client_secret is not None else settings.dexcom_client_secret
        )
        self.redirect_uri = (
            redirect_uri if redirect_uri is not None else settings.dexcom_redirect_uri
        )
        sandbox = settings.dexcom_use_sandbox if use_sandbox is None else use_sandbox
        self.base_url = SANDBOX_BASE_URL if sandbox else PRODUCTION_BASE_URL
        self.timeout = (
            timeout if timeout is not None else settings.dexcom_request_timeout_seconds
        )
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    def build_authorize_url(self, state: str) -> str:
        """URL of the Dexcom consent page for the OAuth authorization-code flow."""
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "scope": "offline_access",
                "state": state,
            }
        )
        return f"{self.base_url}{LOGIN_PATH}?{query}"

    async def exchange_code(
        self, code: str, redirect_uri: str | None = None
    ) -> DexcomTokenSet:
        """Exchange an authorization code for an access/refresh token pair."""
        return await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri or self.redirect_uri,
            }
        )

    async def refresh(self, refresh_token: str) -> DexcomTokenSet:
        """Exchange a refresh token for a new token pair."""
        return await self._request_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )

    async def _request_token(self, form: dict[str, str]) -> DexcomTokenSet:
        body = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            **form,
        }
        try:
            async with self._client() as client:
                response = await client.post(
                    TOKEN_PATH,
                    data=body,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise DexcomConnectionError(f"Token request failed: {e}") from e

        if response.status_code >= 400:
            description = _error_description(response)
            logger.warning(
                "Dexcom token request rejected",
                grant_type=form["grant_type"],
                status_code=response.status_code,
                error=description,
            )
            raise DexcomAuthError(f"Token request failed: {description}")

        data = _json_object(response, "token")
        try:
            return DexcomTokenSet(
                access_token=data["access_token"],
                refresh_token=data["refresh_token"],
                expires_at=datetime.now(UTC) + timedelta(seconds=int(data["expires_in"])),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DexcomApiError("Malformed token response") from e

    async def get_egvs(
        self,
        access_token: str,
        start: datetime,
        end: datetime,
    ) -> list[DexcomEgv]:
        """Fetch EGV records between `start` and `end`.

        Returns:
            Parsed records in the order the API returned them (newest first)

        Raises:
            DexcomTokenExpiredError: On HTTP 401
            DexcomApiError: On any other error status
            DexcomConnectionError: On network failure
        """
        params = {
            "startDate": format_dexcom_time(start),
            "endDate": format_dexcom_time(end),
        }
        try:
            async with self._client() as client:
                response = await client.get(
                    EGVS_PATH,
                    params=params,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            raise DexcomConnectionError(f"EGV request failed: {e}") from e

        if response.status_code == 401:
            raise DexcomTokenExpiredError("Dexcom access token rejected")
        if response.status_code >= 400:
            raise DexcomApiError(
                f"Failed to get Dexcom readings: {_error_description(response)}",
                status_code=response.status_code,
            )

        records = _json_object(response, "EGV").get("records") or []
        egvs = []
        for record in records:
            egv = parse_egv(record)
            if egv is not None:
                egvs.append(egv)
        return egvs
