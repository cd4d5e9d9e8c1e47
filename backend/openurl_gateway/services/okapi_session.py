"""
Okapi Session - HTTP transport layer for the institution-hosted FOLIO API.

RESPONSIBILITIES:
1. Log in and hold the session token (x-okapi-token)
2. POST documents with tenant/token headers, re-logging in once on 401
3. Fetch and cache the institution's pickup locations
4. Translate transport failures into DownstreamConnectionError

This module does NOT:
- Interpret submission outcomes (the submission stage does)
- Build request documents
- Render anything

One session exists per configured service symbol and is shared by every
request routed to that symbol.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from openurl_gateway.services.config_manager import ServiceConfig
from openurl_gateway.services.pipeline_errors import DownstreamConnectionError, LoginError

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

LOGIN_PATH = "/authn/login"
TOKEN_HEADER = "x-okapi-token"
TENANT_HEADER = "x-okapi-tenant"
PICKUP_LOCATION_PARAMS = {
    "filters": "tags.value=i=pickup",
    "perPage": "100",
    "stats": "false",
}

# Written over the token to provoke an authentication failure on next use
INVALID_TOKEN = "bad token"


# =============================================================================
# RESPONSE WRAPPER
# =============================================================================

@dataclass(frozen=True)
class OkapiResponse:
    """Status and raw body of a downstream call, returned verbatim."""
    status: int
    text: str


# =============================================================================
# SESSION CLASS
# =============================================================================

class OkapiSession:
    """
    Long-lived, shared session against one downstream tenant.

    `token` and `pickup_locations` are mutated in place and visible to
    every concurrent request using this session. Login and pickup-location
    population are serialized per session by an asyncio lock.

    Usage:
        session = OkapiSession("ISIL:US-ABC", service_config)
        await session.login()
        res = await session.post("/rs/patronrequests", document)
    """

    def __init__(
        self,
        symbol: str,
        service_config: ServiceConfig,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.symbol = symbol
        self.config = service_config
        self.timeout = timeout
        self.token: Optional[str] = None
        self.pickup_locations: Optional[List[Dict[str, str]]] = None
        self._transport = transport
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<OkapiSession symbol={self.symbol!r} url={self.config.okapi_url!r}>"

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.okapi_url or "",
            timeout=self.timeout,
            transport=self._transport,
        )

    def _headers(self, token: Optional[str]) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/plain",
        }
        if self.config.tenant:
            headers[TENANT_HEADER] = self.config.tenant
        if token:
            headers[TOKEN_HEADER] = token
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, str]] = None,
        token: Optional[str] = None,
    ) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.request(
                    method, path, json=json, params=params, headers=self._headers(token)
                )
        except httpx.TimeoutException as e:
            raise DownstreamConnectionError(
                f"Request to {self.config.okapi_url}{path} timed out after {self.timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise DownstreamConnectionError(
                f"Cannot reach {self.config.okapi_url}{path}: {e}"
            ) from e

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    async def login(self) -> None:
        """Obtain a fresh token. Raises LoginError when credentials are rejected."""
        async with self._lock:
            await self._login()

    async def _ensure_token(self, rejected: Optional[str] = None) -> None:
        """
        Log in unless a usable token is already held.

        `rejected` is the token a 401 was answered for; if another request
        has replaced it in the meantime, that newer token is reused.
        """
        async with self._lock:
            if self.token and self.token != rejected:
                return
            await self._login()

    async def _login(self) -> None:
        logger.info(f"Logging in to {self.config.okapi_url} for service '{self.symbol}'")
        response = await self._send(
            "POST",
            LOGIN_PATH,
            json={"username": self.config.username, "password": self.config.password},
        )
        if response.status_code // 100 != 2:
            logger.error(f"Login for service '{self.symbol}' failed: HTTP {response.status_code}")
            raise LoginError(self.symbol, response.status_code, response.text)

        token = response.headers.get(TOKEN_HEADER)
        if not token:
            try:
                token = response.json().get("okapiToken")
            except ValueError:
                token = None
        if not token:
            raise LoginError(self.symbol, response.status_code, "no token in login response")

        self.token = token
        logger.debug(f"Logged in to service '{self.symbol}'")

    def logout(self) -> None:
        """Forget the token; the next call logs in again."""
        self.token = None

    def invalidate(self) -> None:
        """Replace the token with one the server will reject."""
        self.token = INVALID_TOKEN

    # -------------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------------

    async def post(self, path: str, document: Dict[str, Any]) -> OkapiResponse:
        """
        POST a JSON document, logging in first when no token is held.

        A 401 answer triggers one fresh login and a single repeat of the
        call, which recovers from a cleared or invalidated token.
        """
        if not self.token:
            await self._ensure_token()

        token = self.token
        response = await self._send("POST", path, json=document, token=token)
        if response.status_code == 401:
            logger.warning(f"Token rejected by service '{self.symbol}', logging in again")
            await self._ensure_token(rejected=token)
            response = await self._send("POST", path, json=document, token=self.token)

        return OkapiResponse(status=response.status_code, text=response.text)

    async def get_pickup_locations(self) -> List[Dict[str, str]]:
        """Return the cached pickup locations, populating the cache on first use."""
        if self.pickup_locations is not None:
            return self.pickup_locations

        async with self._lock:
            if self.pickup_locations is not None:
                return self.pickup_locations
            if not self.token:
                await self._login()

            path = self.config.pickup_locations_path
            response = await self._send("GET", path, params=PICKUP_LOCATION_PARAMS, token=self.token)
            if response.status_code == 401:
                await self._login()
                response = await self._send(
                    "GET", path, params=PICKUP_LOCATION_PARAMS, token=self.token
                )
            if response.status_code // 100 != 2:
                raise DownstreamConnectionError(
                    f"Pickup location lookup for '{self.symbol}' failed: HTTP {response.status_code}"
                )

            self.pickup_locations = _parse_pickup_locations(response.json())
            logger.info(
                f"Cached {len(self.pickup_locations)} pickup locations for service '{self.symbol}'"
            )
            return self.pickup_locations


def _parse_pickup_locations(payload: Any) -> List[Dict[str, str]]:
    """Map directory entries to {id, code, name}, sorted by name."""
    entries = payload.get("results", []) if isinstance(payload, dict) else payload or []
    locations = [
        {
            "id": entry.get("id", ""),
            "code": entry.get("slug") or entry.get("code", ""),
            "name": entry.get("name", ""),
        }
        for entry in entries
    ]
    return sorted(locations, key=lambda loc: loc["name"])
