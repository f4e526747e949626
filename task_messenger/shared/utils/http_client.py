"""
Pooled HTTP client for one upstream API.

One httpx.AsyncClient per base URL, opened on first request and closed
explicitly when the pass ends. Tests hand in an httpx.MockTransport via
`transport` so no socket is ever opened.

Usage:
    http = HTTPClientManager("https://app.glassix.com", timeout=30.0)
    response = await http.get_client().post("/api/messages", json=payload)
    await http.close()
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger("http_client")

POOL_MAX_CONNECTIONS = 20
POOL_MAX_KEEPALIVE = 10
POOL_KEEPALIVE_EXPIRY_SECONDS = 30.0


@dataclass(frozen=True)
class ClientConfig:
    base_url: str
    request_timeout: float
    connect_timeout: float
    max_connections: int = POOL_MAX_CONNECTIONS
    max_keepalive_connections: int = POOL_MAX_KEEPALIVE
    keepalive_expiry: float = POOL_KEEPALIVE_EXPIRY_SECONDS


class HTTPClientManager:
    """Owns the pooled client for a single base URL."""

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        connect_timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = ClientConfig(
            base_url=base_url.rstrip("/"),
            request_timeout=timeout,
            # connect phase never outlives the whole request
            connect_timeout=min(connect_timeout, timeout),
        )
        self._default_headers = dict(headers or {})
        self._transport = transport
        self._pool: Optional[httpx.AsyncClient] = None

    def _label(self) -> str:
        return self.config.base_url or "(no base URL)"

    def get_client(self) -> httpx.AsyncClient:
        """The pooled client, opened on first use."""
        if self._pool is None:
            cfg = self.config
            self._pool = httpx.AsyncClient(
                base_url=cfg.base_url,
                headers=self._default_headers,
                transport=self._transport,
                timeout=httpx.Timeout(cfg.request_timeout, connect=cfg.connect_timeout),
                limits=httpx.Limits(
                    max_connections=cfg.max_connections,
                    max_keepalive_connections=cfg.max_keepalive_connections,
                    keepalive_expiry=cfg.keepalive_expiry,
                ),
                follow_redirects=True,
            )
            logger.info(f"Opened HTTP pool for {self._label()}")
        return self._pool

    async def close(self) -> None:
        """Release pooled connections. Safe to call more than once."""
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.aclose()
        logger.info(f"Closed HTTP pool for {self._label()}")

    def is_active(self) -> bool:
        return self._pool is not None

    def get_status(self) -> Dict[str, Any]:
        """Pool state for monitoring."""
        return {"active": self.is_active(), "config": asdict(self.config)}
