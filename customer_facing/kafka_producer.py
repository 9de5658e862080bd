"""Kafka producer for customer-facing.

Key points:

1) One producer per process
Creating a producer is relatively heavy. The lifecycle supervisor creates it
once, checks that a broker answers, and recreates it after a connection loss.

2) Delivery acknowledgement
`produce()` only queues the message locally; the broker confirms later via the
delivery callback. `publish()` flushes and then inspects that callback's
result, so `POST /buy` returns 201 only after Kafka accepted the event.

3) Message key = userid
Kafka picks the partition from the key. Same key => same partition =>
purchases of one user are consumed in the order they were submitted.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from confluent_kafka import KafkaException, Producer

from purchase_shared.errors import DependencyUnavailable, PublishError
from purchase_shared.lifecycle import Dependency
from purchase_shared.logger_config import log
from purchase_shared.metrics import MESSAGES_PUBLISHED
from purchase_shared.models import Purchase

from .config import (
    KAFKA_BOOTSTRAP_SERVERS,
    KAFKA_CLIENT_ID,
    KAFKA_TOPIC,
    PUBLISH_TIMEOUT_SECONDS,
)


def create_producer() -> Producer:
    """Create and configure a Confluent Kafka Producer."""
    conf: dict[str, Any] = {
        "bootstrap.servers": KAFKA_BOOTSTRAP_SERVERS,
        "client.id": KAFKA_CLIENT_ID,
        # Broker-side dedup of the producer's own internal retries.
        "enable.idempotence": True,
    }
    return Producer(conf)


def encode_purchase(purchase: Purchase) -> tuple[bytes, bytes]:
    """Return the (key, value) bytes for a purchase event."""
    return purchase.userid.encode("utf-8"), purchase.model_dump_json().encode("utf-8")


class StreamProducer(Dependency):
    """The producer side of the purchases topic, supervised as the `stream` dependency."""

    name = "stream"

    def __init__(
        self,
        topic: str = KAFKA_TOPIC,
        producer_factory: Callable[[], Producer] = create_producer,
        timeout: float = PUBLISH_TIMEOUT_SECONDS,
    ):
        self.topic = topic
        self.timeout = timeout
        self._producer_factory = producer_factory
        self._producer: Optional[Producer] = None

    def connect(self) -> None:
        producer = self._producer_factory()
        # Producer() never blocks; a metadata request proves a broker is reachable.
        producer.list_topics(timeout=self.timeout)
        self._producer = producer

    def check(self) -> None:
        producer = self._producer
        if producer is None:
            raise DependencyUnavailable(self.name, "producer not connected")
        producer.list_topics(timeout=self.timeout)

    def close(self) -> None:
        producer, self._producer = self._producer, None
        if producer is not None:
            remaining = producer.flush(self.timeout)
            if remaining:
                log.warning("Producer closed with undelivered messages", remaining=remaining)

    def publish(self, purchase: Purchase) -> None:
        """Send one purchase and wait for the broker's acknowledgement.

        Raises:
            DependencyUnavailable: the producer is not connected.
            PublishError: delivery failed or was not confirmed in time.
        """
        producer = self._producer
        if producer is None:
            MESSAGES_PUBLISHED.labels(status="failed").inc()
            raise DependencyUnavailable(self.name, "producer not connected")

        key, value = encode_purchase(purchase)
        report: dict[str, Any] = {}

        def on_delivery(err, msg) -> None:
            report["error"] = err
            if err is None:
                report["partition"] = msg.partition()
                report["offset"] = msg.offset()

        try:
            producer.produce(topic=self.topic, key=key, value=value, on_delivery=on_delivery)
            producer.flush(self.timeout)
        except (KafkaException, BufferError) as exc:
            MESSAGES_PUBLISHED.labels(status="failed").inc()
            raise PublishError(str(exc), original_exception=exc) from exc

        if "error" not in report:
            MESSAGES_PUBLISHED.labels(status="failed").inc()
            raise PublishError(f"delivery not confirmed within {self.timeout}s")
        if report["error"] is not None:
            MESSAGES_PUBLISHED.labels(status="failed").inc()
            raise PublishError(str(report["error"]))

        MESSAGES_PUBLISHED.labels(status="delivered").inc()
        log.info(
            "Purchase published",
            topic=self.topic,
            userid=purchase.userid,
            partition=report["partition"],
            offset=report["offset"],
        )
