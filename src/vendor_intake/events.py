"""
Kafka publisher for evaluation events.

kafka-python's producer is blocking, so every call runs in the default
executor.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from kafka import KafkaProducer
from kafka.errors import KafkaError

from .config import EventsConfig

logger = logging.getLogger(__name__)


class KafkaEventPublisher:
    """Async wrapper around a Kafka producer."""

    def __init__(
        self,
        bootstrap_servers: str,
        client_id: str = "vendor-intake",
        producer_factory: Callable[..., Any] | None = None,
    ):
        """
        Initialize the publisher.

        Args:
            bootstrap_servers: Comma-separated broker addresses
            client_id: Client identifier
            producer_factory: Builds the producer; defaults to KafkaProducer
        """
        self.bootstrap_servers = bootstrap_servers
        self.client_id = client_id
        self._producer_factory = producer_factory or KafkaProducer
        self._producer: Any = None

    @classmethod
    def from_config(cls, config: EventsConfig) -> "KafkaEventPublisher":
        return cls(config.bootstrap_servers, client_id=config.client_id)

    @property
    def started(self) -> bool:
        return self._producer is not None

    def _create_producer(self) -> Any:
        return self._producer_factory(
            bootstrap_servers=self.bootstrap_servers.split(","),
            client_id=self.client_id,
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            key_serializer=lambda k: k.encode("utf-8") if k else None,
            max_block_ms=10000,
            request_timeout_ms=30000,
        )

    async def start(self) -> None:
        """Connect the producer. Raises KafkaError if the brokers are unreachable."""
        if self._producer:
            return
        loop = asyncio.get_running_loop()
        try:
            self._producer = await loop.run_in_executor(None, self._create_producer)
        except KafkaError as e:
            logger.error(f"Failed to start Kafka producer: {e}")
            raise
        logger.info(f"Kafka producer started, connected to: {self.bootstrap_servers}")

    async def publish(self, topic: str, value: dict[str, Any], key: str | None = None) -> None:
        """Send one message and wait for the broker acknowledgement."""
        await self.start()
        loop = asyncio.get_running_loop()

        def _send() -> Any:
            future = self._producer.send(topic, value=value, key=key)
            return future.get(timeout=10)

        await loop.run_in_executor(None, _send)
        logger.debug(f"Published event to {topic} (key={key})")

    async def stop(self) -> None:
        """Flush and close the producer."""
        if not self._producer:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._producer.flush)
            await loop.run_in_executor(None, self._producer.close)
            logger.info("Kafka producer stopped")
        except KafkaError as e:
            logger.error(f"Error stopping Kafka producer: {e}")
        finally:
            self._producer = None
