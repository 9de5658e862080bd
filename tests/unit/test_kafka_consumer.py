"""
Unit tests for the customer-management subscription: decode, store, commit.
"""

import json
import threading

import pytest
from confluent_kafka import KafkaError, KafkaException
from prometheus_client import REGISTRY
from pymongo.errors import AutoReconnect

from customer_management.kafka_consumer import decode_purchase_event
from purchase_shared.errors import DependencyUnavailable, MessageDecodeError
from tests.fakes import FakeConsumer, FakeMessage


def payload(userid="u1", price=12.34, timestamp="2024-05-01T10:00:00Z", **extra):
    data = {"username": "demo", "userid": userid, "price": price, "timestamp": timestamp}
    data.update(extra)
    return json.dumps(data).encode("utf-8")


def counter(status):
    return REGISTRY.get_sample_value("kafka_messages_processed_total", {"status": status}) or 0


@pytest.fixture
def connected(store, subscription, consumers):
    """Connected store and subscription; returns the live FakeConsumer."""
    store.connect()
    subscription.connect()
    return consumers[-1]


@pytest.mark.unit
class TestDecodePurchaseEvent:

    def test_decodes_valid_payload(self):
        event = decode_purchase_event(payload())
        assert event.userid == "u1"
        assert event.price == 12.34

    @pytest.mark.parametrize(
        "raw",
        [None, b"\xff\xfe", b"{not json", b"[]", json.dumps({"userid": "u1"}).encode()],
    )
    def test_rejects_malformed_payload(self, raw):
        with pytest.raises(MessageDecodeError):
            decode_purchase_event(raw)

    @pytest.mark.parametrize(
        "raw",
        [
            payload(userid=""),
            payload(username=""),
            payload(price=float("nan")),
            payload(price=float("inf")),
        ],
    )
    def test_rejects_unreadable_purchase(self, raw):
        """Empty ids and non-finite prices could never be served back."""
        with pytest.raises(MessageDecodeError):
            decode_purchase_event(raw)

    def test_does_not_apply_business_rules(self):
        event = decode_purchase_event(payload(price=0))
        assert event.price == 0


@pytest.mark.unit
class TestHandleMessage:

    def test_valid_message_is_stored_then_committed(self, broker, collection, subscription, connected):
        msg = broker.append(b"u1", payload())

        subscription.handle_message(connected, msg)

        assert len(collection.docs) == 1
        assert collection.docs[0]["userid"] == "u1"
        assert broker.committed[msg.partition()] == msg.offset() + 1

    def test_undecodable_message_is_dropped_and_committed(self, broker, collection, subscription, connected):
        before = counter("dropped")
        msg = broker.append_raw(b"{garbage")

        subscription.handle_message(connected, msg)

        assert collection.docs == []
        assert counter("dropped") == before + 1
        assert broker.committed[msg.partition()] == msg.offset() + 1

    def test_empty_userid_is_dropped_not_stored(self, broker, collection, subscription, connected):
        before = counter("dropped")
        msg = broker.append(b"", payload(userid=""))

        subscription.handle_message(connected, msg)

        assert collection.docs == []
        assert counter("dropped") == before + 1
        assert broker.committed[msg.partition()] == msg.offset() + 1

    def test_store_failure_is_not_committed(self, broker, collection, subscription, connected):
        collection.error = AutoReconnect("primary stepped down")
        msg = broker.append(b"u1", payload())

        with pytest.raises(DependencyUnavailable) as exc_info:
            subscription.handle_message(connected, msg)

        assert exc_info.value.dependency == "store"
        assert msg.partition() not in broker.committed

    def test_all_brokers_down_raises_stream_unavailable(self, subscription, connected):
        msg = FakeMessage(error=KafkaError(KafkaError._ALL_BROKERS_DOWN, "all brokers down"))

        with pytest.raises(DependencyUnavailable) as exc_info:
            subscription.handle_message(connected, msg)

        assert exc_info.value.dependency == "stream"

    def test_transient_kafka_error_is_skipped(self, collection, subscription, connected):
        msg = FakeMessage(error=KafkaError(KafkaError._TRANSPORT, "broker hiccup"))

        subscription.handle_message(connected, msg)

        assert collection.docs == []
        assert connected.commits == []

    def test_consumer_does_not_enforce_price_rule(self, broker, collection, subscription, connected):
        subscription.handle_message(connected, broker.append(b"u1", payload(price=-5)))
        assert collection.docs[0]["price"] == -5


@pytest.mark.unit
class TestSubscription:

    def test_subscribes_to_topic(self, store, subscription, consumers):
        store.connect()
        subscription.connect()
        assert consumers[-1].subscribed == ["purchases"]

    def test_new_group_starts_at_end_of_topic(self, broker, collection, store, subscription, consumers):
        broker.append(b"u1", payload())
        store.connect()
        subscription.connect()

        assert consumers[-1].poll(0) is None
        assert collection.docs == []

    def test_connect_fails_when_broker_down(self, broker, store, subscription, consumers):
        broker.down = True
        store.connect()

        with pytest.raises(KafkaException):
            subscription.connect()
        assert consumers[-1].closed

    def test_run_requires_connection(self, subscription):
        with pytest.raises(DependencyUnavailable):
            subscription.run(threading.Event())

    def test_redelivery_after_crash_duplicates_document(self, broker, collection, store, subscription):
        """Insert succeeds, commit never happens: the restarted consumer stores it again.

        At-least-once is the contract, so two documents is the expected result.
        """
        store.connect()

        first = FakeConsumer(broker)
        subscription._consumer_factory = lambda: first
        subscription.connect()
        committed = broker.append(b"u1", payload(price=1.0))
        subscription.handle_message(first, first.poll(0))

        # Process dies between insert and offset commit.
        first.fail_commit = True
        crashed = broker.append(b"u1", payload(price=2.0))
        with pytest.raises(DependencyUnavailable):
            subscription.handle_message(first, first.poll(0))
        subscription.close()

        second = FakeConsumer(broker)
        subscription._consumer_factory = lambda: second
        subscription.connect()
        redelivered = second.poll(0)
        subscription.handle_message(second, redelivered)

        assert redelivered.offset() == crashed.offset()
        assert committed.offset() < crashed.offset()
        prices = sorted(doc["price"] for doc in collection.docs)
        assert prices == [1.0, 2.0, 2.0]
