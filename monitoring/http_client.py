"""
============================================================================
STATUS ENGINE - SHARED PROBE CONNECTION POOL
============================================================================
One httpx.AsyncClient backs every health check.  The pool is bounded in
total (httpx.Limits) and per destination (one semaphore per host), and
idle keep-alive connections are evicted after ``keepalive_expiry``.

The application constructs a single ProbeClient at startup, passes it to
the evaluator, and closes it on shutdown.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Mapping, Optional

import httpx

from config.constants import Defaults
from config.settings import HttpProbeSettings
from utils.logger import get_logger


logger = get_logger("ProbeClient")


class ProbeClient:
    """
    Owner of the outbound connection pool used by health checks.

    Parameters
    ----------
    settings : HttpProbeSettings
        Timeouts and pool limits.
    transport : httpx.AsyncBaseTransport | None
        Optional transport override (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        settings: Optional[HttpProbeSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or HttpProbeSettings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._host_slots: Dict[str, asyncio.Semaphore] = {}
        self._slot_users: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Create the pooled client. Safe to call more than once."""
        if self._client is not None:
            return

        s = self.settings
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                s.read_timeout,
                connect=s.connect_timeout,
                pool=s.connect_timeout,
            ),
            limits=httpx.Limits(
                max_connections=s.max_connections,
                max_keepalive_connections=s.max_connections,
                keepalive_expiry=s.keepalive_expiry,
            ),
            follow_redirects=s.follow_redirects,
            verify=s.verify_ssl,
            headers={
                "User-Agent": s.user_agent,
                "Accept": Defaults.ACCEPT_HEADER,
            },
            transport=self._transport,
        )
        logger.info(
            f"Probe pool ready (max_connections={s.max_connections}, "
            f"per_host={s.max_connections_per_host}, connect_timeout={s.connect_timeout}s, "
            f"read_timeout={s.read_timeout}s, keepalive_expiry={s.keepalive_expiry}s)"
        )

    async def close(self) -> None:
        """Close every pooled connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Probe pool closed")

    async def __aenter__(self) -> "ProbeClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._client is not None

    # ------------------------------------------------------------------
    # REQUESTS
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _host_slot(self, url: str) -> AsyncIterator[None]:
        """Hold one of the per-host request slots for *url*'s host."""
        host = httpx.URL(url).host or ""
        slot = self._host_slots.get(host)
        if slot is None:
            slot = asyncio.Semaphore(self.settings.max_connections_per_host)
            self._host_slots[host] = slot
        self._slot_users[host] = self._slot_users.get(host, 0) + 1
        try:
            async with slot:
                yield
        finally:
            self._slot_users[host] -= 1
            if self._slot_users[host] == 0:
                # no request holds or waits for this host
                del self._slot_users[host]
                del self._host_slots[host]

    @property
    def tracked_hosts(self) -> int:
        return len(self._host_slots)

    async def get(self, url: str, headers: Optional[Mapping[str, str]] = None) -> httpx.Response:
        """
        Issue a GET through the shared pool and read the full body.

        Raises
        ------
        httpx.HTTPError
            Transport failures (timeouts, DNS, refused connections) and
            malformed URLs.
        RuntimeError
            If the pool has not been started.
        """
        if self._client is None:
            raise RuntimeError("ProbeClient.start() must be called before issuing probes")

        async with self._host_slot(url):
            return await self._client.get(url, headers=dict(headers or {}))
