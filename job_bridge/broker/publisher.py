"""
Job publisher.

Picks a pool channel uniformly at random for each job and publishes it as a
persistent message. A raised publish is retried exactly once on the same
channel after a short pause; a flow signal (confirmation still pending) is a
warning, not a failure.
"""

import asyncio
import logging
import random
from typing import Any

from opentelemetry import trace

from job_bridge.broker.context import BrokerContext
from job_bridge.broker.pool import PooledChannel
from job_bridge.config import Settings, get_settings
from job_bridge.constants import PUBLISH_ATTEMPTS, SPAN_PUBLISH_JOB, PublishOutcome
from job_bridge.exceptions import NoChannelsAvailable, PublishFailed
from job_bridge.observability.metrics import get_metrics
from job_bridge.serialization import encode_payload

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class Publisher:
    """Publishes job payloads through the channel pool of a ``BrokerContext``."""

    def __init__(
        self,
        context: BrokerContext,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ):
        """
        Initialize the publisher.

        Args:
            context: Broker state holding the channel pool.
            settings: Application settings. Defaults to the cached settings.
            rng: Source of randomness for channel selection.
        """
        settings = settings or get_settings()
        self._context = context
        self._retry_delay = settings.publish_retry_delay_seconds
        self._flow_timeout = settings.publish_flow_timeout_seconds
        self._rng = rng or random.Random()
        self._metrics = get_metrics()

    def select_channel(self) -> PooledChannel:
        """
        Pick a pool channel uniformly at random.

        Raises:
            NoChannelsAvailable: The pool is empty.
        """
        pool = self._context.pool
        if not pool:
            raise NoChannelsAvailable()
        return self._rng.choice(pool)

    async def publish(self, payload: Any) -> PublishOutcome:
        """
        Publish a job payload.

        Args:
            payload: JSON-serializable job payload.

        Returns:
            PUBLISHED, or FLOW when the channel reported backpressure.

        Raises:
            NoChannelsAvailable: The pool is empty.
            PublishFailed: The attempt and its single retry both raised.
        """
        channel = self.select_channel()
        body = encode_payload(payload)

        with tracer.start_as_current_span(SPAN_PUBLISH_JOB) as span:
            span.set_attribute("channel", channel.index)
            span.set_attribute("body_size", len(body))

            try:
                confirmed = await channel.publish(body, self._flow_timeout)
            except Exception as e:
                logger.error(
                    "Failed to publish job. Retrying...",
                    extra={"channel": channel.index, "error": str(e)},
                )
                self._metrics.record_publish_retry(channel.index)
                await asyncio.sleep(self._retry_delay)

                try:
                    confirmed = await channel.publish(body, self._flow_timeout)
                except Exception as retry_error:
                    span.record_exception(retry_error)
                    self._metrics.record_publish(channel.index, PublishOutcome.FAILED)
                    raise PublishFailed(PUBLISH_ATTEMPTS) from retry_error

            if not confirmed:
                logger.warning(
                    "Channel buffer full, message may be delayed",
                    extra={"channel": channel.index, "pending": channel.pending},
                )
                self._metrics.record_publish(channel.index, PublishOutcome.FLOW)
                return PublishOutcome.FLOW

            self._metrics.record_publish(channel.index, PublishOutcome.PUBLISHED)
            return PublishOutcome.PUBLISHED
