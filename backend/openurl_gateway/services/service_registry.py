"""
Service Registry - symbol to session lookup.

Sessions are created once at startup, one per configured symbol, plus a
default session under the empty symbol when the top-level configuration
names an okapi_url.
"""

import logging
from typing import Dict, Optional

import httpx

from openurl_gateway.services.config_manager import ConfigManager
from openurl_gateway.services.okapi_session import OkapiSession
from openurl_gateway.services.pipeline_errors import PipelineError

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = ""


class ServiceRegistry:
    """Owns every OkapiSession for the lifetime of the process."""

    def __init__(
        self,
        config: ConfigManager,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._sessions: Dict[str, OkapiSession] = {}

        for symbol in config.symbols():
            self._sessions[symbol] = OkapiSession(
                symbol,
                config.service_values(symbol),
                timeout=config.request_timeout,
                transport=transport,
            )

        if config.has_default_service:
            self._sessions[DEFAULT_SYMBOL] = OkapiSession(
                DEFAULT_SYMBOL,
                config.service_values(DEFAULT_SYMBOL),
                timeout=config.request_timeout,
                transport=transport,
            )

        logger.info(f"Registered services: {sorted(self._sessions) or 'none'}")

    def lookup(self, symbol: str) -> Optional[OkapiSession]:
        """The session for `symbol`, else the default session, else None."""
        return self._sessions.get(symbol) or self._sessions.get(DEFAULT_SYMBOL)

    async def login_all(self) -> None:
        """Log every session in; failures are left for lazy login on first use."""
        for session in self._sessions.values():
            try:
                await session.login()
            except PipelineError as e:
                logger.error(f"Startup login failed for service '{session.symbol}': {e.message}")
