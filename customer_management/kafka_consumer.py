"""Kafka consumer loop for customer-management.

High-level flow, one message at a time:
    poll -> decode JSON -> validate schema -> insert into Mongo -> commit offset

Important Kafka concepts used here:

1) Consumer groups and offsets
- Kafka tracks the committed offset per partition per consumer group.
- Replicas sharing KAFKA_GROUP_ID split the partitions between them; one
  replica owns a partition at a time, so a user's purchases stay in order.
- A group with no committed offset starts at the end of the topic
  (`auto.offset.reset=latest`) rather than replaying the whole backlog.

2) Manual offset commit
- `enable.auto.commit=False`; we commit only after the insert completed.
- That gives at-least-once delivery. A crash between insert and commit means
  the message comes back and is stored twice. We accept the duplicate.

3) Poison messages
- A payload that is not a valid purchase is logged, counted as dropped and
  committed. Otherwise the consumer would re-read it forever.

4) Store failures
- If the insert fails we do NOT commit. The loop raises, the lifecycle
  supervisor closes the store and this subscription, and after reconnecting
  the new consumer resumes from the last committed offset.
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Callable, Optional

from confluent_kafka import Consumer, KafkaError, KafkaException
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from purchase_shared.errors import DependencyUnavailable, MessageDecodeError
from purchase_shared.lifecycle import Dependency
from purchase_shared.logger_config import log
from purchase_shared.metrics import (
    MESSAGE_PROCESSING_DURATION,
    MESSAGES_IN_QUEUE,
    MESSAGES_PROCESSED,
)
from purchase_shared.models import PurchaseEvent

from .config import (
    HEALTH_CHECK_INTERVAL_SECONDS,
    KAFKA_BOOTSTRAP_SERVERS,
    KAFKA_CLIENT_ID,
    KAFKA_GROUP_ID,
    KAFKA_TOPIC,
)
from .mongo import MongoStore, insert_purchase


def create_consumer() -> Consumer:
    """Create and configure a Confluent Kafka Consumer."""
    conf: dict[str, Any] = {
        "bootstrap.servers": KAFKA_BOOTSTRAP_SERVERS,
        "group.id": KAFKA_GROUP_ID,
        "client.id": KAFKA_CLIENT_ID,
        "auto.offset.reset": "latest",
        "enable.auto.commit": False,
    }
    return Consumer(conf)


def decode_purchase_event(raw: Optional[bytes]) -> PurchaseEvent:
    """Turn a message value into a `PurchaseEvent`.

    Raises:
        MessageDecodeError: empty value, bad UTF-8/JSON, or missing fields.
    """
    if raw is None:
        raise MessageDecodeError("empty payload")

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MessageDecodeError(f"bad payload: {e}", original_exception=e) from e

    try:
        return PurchaseEvent.model_validate(data)
    except ValidationError as e:
        raise MessageDecodeError(f"bad event schema: {e}", original_exception=e) from e


class PurchaseSubscription(Dependency):
    """The durable subscription to the purchases topic (the `stream` dependency).

    `run()` is the lifecycle worker: it blocks, handling messages until the
    stop event is set or a dependency is lost.
    """

    name = "stream"

    def __init__(
        self,
        store: MongoStore,
        topic: str = KAFKA_TOPIC,
        consumer_factory: Callable[[], Consumer] = create_consumer,
        poll_timeout: float = 1.0,
        connect_timeout: float = 5.0,
        check_interval: float = HEALTH_CHECK_INTERVAL_SECONDS,
    ):
        self.topic = topic
        self.poll_timeout = poll_timeout
        self.connect_timeout = connect_timeout
        self.check_interval = check_interval
        self._store = store
        self._consumer_factory = consumer_factory
        self._consumer: Optional[Consumer] = None

    def connect(self) -> None:
        consumer = self._consumer_factory()
        try:
            # subscribe() is lazy; a metadata request proves a broker answers.
            consumer.list_topics(timeout=self.connect_timeout)
            consumer.subscribe([self.topic])
        except Exception:
            consumer.close()
            raise
        self._consumer = consumer
        log.info("[Consumer] Subscribed", topic=self.topic, group_id=KAFKA_GROUP_ID)

    def close(self) -> None:
        consumer, self._consumer = self._consumer, None
        if consumer is not None:
            # Nothing is committed here: auto commit is off.
            consumer.close()
            log.info("[Consumer] Closed")

    def run(self, stop_event: threading.Event) -> None:
        """Consume until `stop_event` is set.

        Polls with a short timeout so shutdown is noticed within a second.
        Pings the store every `check_interval` seconds so a lost store flips
        readiness even when no traffic arrives.
        """
        consumer = self._consumer
        if consumer is None:
            raise DependencyUnavailable(self.name, "not subscribed")

        next_check = time.monotonic() + self.check_interval
        while not stop_event.is_set():
            msg = consumer.poll(self.poll_timeout)

            if time.monotonic() >= next_check:
                self._check_store()
                next_check = time.monotonic() + self.check_interval

            if msg is None:
                continue
            self.handle_message(consumer, msg)

    def handle_message(self, consumer: Consumer, msg) -> None:
        """Process one polled message: store it, drop it, or raise."""
        # `msg.error()` is a Kafka-level error, not an application payload error.
        err = msg.error()
        if err is not None:
            if err.fatal() or err.code() == KafkaError._ALL_BROKERS_DOWN:
                raise DependencyUnavailable(self.name, str(err))
            log.warning("[Consumer] Kafka error", error=str(err))
            return

        MESSAGES_IN_QUEUE.inc()
        start = time.perf_counter()
        try:
            try:
                event = decode_purchase_event(msg.value())
            except MessageDecodeError as e:
                log.warning(
                    "[Consumer] Dropping undecodable message",
                    partition=msg.partition(),
                    offset=msg.offset(),
                    error=e.message,
                )
                MESSAGES_PROCESSED.labels(status="dropped").inc()
                self._commit(consumer, msg)
                return

            log.debug(
                "[Consumer] Received event",
                userid=event.userid,
                partition=msg.partition(),
                offset=msg.offset(),
            )

            try:
                insert_purchase(self._store.collection, event)
            except DependencyUnavailable:
                MESSAGES_PROCESSED.labels(status="failed").inc()
                raise
            except PyMongoError as e:
                MESSAGES_PROCESSED.labels(status="failed").inc()
                # No commit: the message is redelivered after reconnecting.
                raise DependencyUnavailable("store", str(e), original_exception=e) from e

            MESSAGES_PROCESSED.labels(status="stored").inc()
            self._commit(consumer, msg)
        finally:
            MESSAGES_IN_QUEUE.dec()
            MESSAGE_PROCESSING_DURATION.observe(time.perf_counter() - start)

    def _commit(self, consumer: Consumer, msg) -> None:
        try:
            consumer.commit(message=msg, asynchronous=False)
        except KafkaException as e:
            raise DependencyUnavailable(self.name, f"commit failed: {e}", original_exception=e) from e

    def _check_store(self) -> None:
        try:
            self._store.check()
        except DependencyUnavailable:
            raise
        except Exception as e:
            raise DependencyUnavailable(self._store.name, str(e), original_exception=e) from e
