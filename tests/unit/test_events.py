"""Tests for the Kafka event publisher."""

import json
from unittest.mock import MagicMock

import pytest
from kafka.errors import NoBrokersAvailable

from vendor_intake.config import EventsConfig
from vendor_intake.events import KafkaEventPublisher


@pytest.fixture
def producer():
    producer = MagicMock()
    producer.send.return_value.get.return_value = MagicMock(offset=1)
    return producer


@pytest.fixture
def factory(producer):
    return MagicMock(return_value=producer)


class TestKafkaEventPublisher:
    """Tests for KafkaEventPublisher."""

    async def test_publish_starts_producer_once(self, factory, producer):
        publisher = KafkaEventPublisher("kafka-1:9092,kafka-2:9092", producer_factory=factory)

        await publisher.publish("product-evaluations", {"score": 85}, key="Smart Watch")
        await publisher.publish("product-evaluations", {"score": 60}, key="Mug")

        factory.assert_called_once()
        kwargs = factory.call_args.kwargs
        assert kwargs["bootstrap_servers"] == ["kafka-1:9092", "kafka-2:9092"]
        assert kwargs["client_id"] == "vendor-intake"
        assert producer.send.call_count == 2
        producer.send.assert_any_call(
            "product-evaluations", value={"score": 85}, key="Smart Watch"
        )
        producer.send.return_value.get.assert_called_with(timeout=10)

    async def test_serializers(self, factory):
        publisher = KafkaEventPublisher("localhost:9092", producer_factory=factory)

        await publisher.start()

        kwargs = factory.call_args.kwargs
        assert json.loads(kwargs["value_serializer"]({"price": 1.5})) == {"price": 1.5}
        assert kwargs["key_serializer"]("Smart Watch") == b"Smart Watch"
        assert kwargs["key_serializer"](None) is None

    async def test_start_failure_propagates(self):
        factory = MagicMock(side_effect=NoBrokersAvailable())
        publisher = KafkaEventPublisher("localhost:9092", producer_factory=factory)

        with pytest.raises(NoBrokersAvailable):
            await publisher.start()

        assert publisher.started is False

    async def test_stop_flushes_and_closes(self, factory, producer):
        publisher = KafkaEventPublisher("localhost:9092", producer_factory=factory)
        await publisher.start()

        await publisher.stop()

        producer.flush.assert_called_once()
        producer.close.assert_called_once()
        assert publisher.started is False

    async def test_stop_without_start(self, factory):
        publisher = KafkaEventPublisher("localhost:9092", producer_factory=factory)

        await publisher.stop()

        factory.assert_not_called()

    def test_from_config(self):
        publisher = KafkaEventPublisher.from_config(
            EventsConfig(enabled=True, bootstrap_servers="kafka:9092", client_id="intake-test")
        )

        assert publisher.bootstrap_servers == "kafka:9092"
        assert publisher.client_id == "intake-test"
        assert publisher.started is False
