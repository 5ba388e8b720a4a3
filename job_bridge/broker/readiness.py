"""
Broker readiness probe.

Polls the RabbitMQ management API before the worker connects, so the worker
does not race a broker that is still booting.
"""

import asyncio
import logging

import httpx

from job_bridge.config import Settings, get_settings
from job_bridge.exceptions import NotReady

logger = logging.getLogger(__name__)


class ReadinessProber:
    """Checks the management endpoint with basic auth; any 2xx means ready."""

    def __init__(
        self,
        url: str,
        username: str,
        password: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the prober.

        Args:
            url: Management status endpoint, e.g. ``http://host:15672/api/overview``.
            username: Basic auth user.
            password: Basic auth password.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.url = url
        self._auth = httpx.BasicAuth(username, password)
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ReadinessProber":
        settings = settings or get_settings()
        return cls(
            url=settings.management_url,
            username=settings.rabbitmq_user,
            password=settings.rabbitmq_pass,
            timeout=settings.ready_timeout_seconds,
        )

    async def probe(self, client: httpx.AsyncClient) -> bool:
        """Return True if the endpoint answered with a 2xx status."""
        try:
            response = await client.get(self.url)
        except httpx.HTTPError as e:
            logger.debug("Readiness probe failed", extra={"url": self.url, "error": str(e)})
            return False

        if not response.is_success:
            logger.debug(
                "Readiness probe got non-success status",
                extra={"url": self.url, "status_code": response.status_code},
            )
        return response.is_success

    async def wait_ready(self, max_retries: int, delay: float) -> None:
        """
        Poll until the broker is ready.

        Args:
            max_retries: Number of probes before giving up.
            delay: Seconds to sleep after a failed probe.

        Raises:
            NotReady: No probe succeeded.
        """
        async with httpx.AsyncClient(
            auth=self._auth,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            for attempt in range(1, max_retries + 1):
                if await self.probe(client):
                    logger.info("RabbitMQ ready", extra={"attempt": attempt})
                    return

                logger.info(
                    f"RabbitMQ not ready yet. Retry {attempt}/{max_retries}",
                    extra={"url": self.url},
                )
                await asyncio.sleep(delay)

        raise NotReady(max_retries)
