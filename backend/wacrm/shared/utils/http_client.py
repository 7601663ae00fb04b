"""
HTTP Client Manager with Connection Pooling

One shared httpx.AsyncClient for all Graph API calls: connections are reused
across webhook deliveries instead of paying a TLS handshake per auto-reply.
The client is created lazily and closed from the FastAPI lifespan.

Usage:
    from wacrm.shared.utils.http_client import http_client_manager

    client = http_client_manager.get_client()
    response = await client.post(url, json=payload, timeout=45.0)
"""
import logging
from typing import Optional, Dict, Any

import httpx

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 30.0
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_MAX_CONNECTIONS = 100
DEFAULT_MAX_KEEPALIVE_CONNECTIONS = 20
DEFAULT_KEEPALIVE_EXPIRY = 30.0  # seconds


class HTTPClientManager:
    """
    Singleton HTTP client manager with connection pooling.
    """

    _instance: Optional['HTTPClientManager'] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        # Prevent re-initialization
        if getattr(self, '_initialized', False):
            return

        self._initialized = True
        self._client: Optional[httpx.AsyncClient] = None
        self._config = {
            "timeout": DEFAULT_TIMEOUT,
            "connect_timeout": DEFAULT_CONNECT_TIMEOUT,
            "max_connections": DEFAULT_MAX_CONNECTIONS,
            "max_keepalive_connections": DEFAULT_MAX_KEEPALIVE_CONNECTIONS,
            "keepalive_expiry": DEFAULT_KEEPALIVE_EXPIRY,
        }

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            timeout=self._config["timeout"],
            connect=self._config["connect_timeout"]
        )
        limits = httpx.Limits(
            max_connections=self._config["max_connections"],
            max_keepalive_connections=self._config["max_keepalive_connections"],
            keepalive_expiry=self._config["keepalive_expiry"]
        )
        return httpx.AsyncClient(timeout=timeout, limits=limits, follow_redirects=True)

    def get_client(self) -> httpx.AsyncClient:
        """Get the shared client, creating it on first access."""
        if self._client is None or self._client.is_closed:
            self._client = self._create_client()
            logger.info("HTTP client created with connection pooling")
        return self._client

    async def close(self) -> None:
        """Close the client and release all connections (application shutdown)."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("HTTP client closed, connections released")

    def is_active(self) -> bool:
        return self._client is not None

    def get_status(self) -> Dict[str, Any]:
        """Current client status for the config endpoint."""
        return {"active": self.is_active(), "config": self._config}


# Singleton instance
http_client_manager = HTTPClientManager()


async def shutdown_http_client():
    """Call during FastAPI shutdown to properly close connections."""
    await http_client_manager.close()
