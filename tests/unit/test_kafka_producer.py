"""
Unit tests for the customer-facing Kafka producer.
"""

import json

import pytest
from confluent_kafka import KafkaException

from customer_facing.kafka_producer import StreamProducer, encode_purchase
from purchase_shared.errors import DependencyUnavailable, PublishError
from purchase_shared.models import Purchase, PurchaseFields
from tests.fakes import FakeProducer, SilentProducer


def make_purchase(userid="u1", price=12.34):
    return Purchase.accept(PurchaseFields(username="demo", userid=userid, price=price))


@pytest.mark.unit
class TestEncodePurchase:

    def test_key_is_userid(self):
        key, _ = encode_purchase(make_purchase("user-42"))
        assert key == b"user-42"

    def test_value_is_json_with_all_fields(self):
        _, value = encode_purchase(make_purchase())
        data = json.loads(value)
        assert set(data) == {"username", "userid", "price", "timestamp"}
        assert data["price"] == 12.34


@pytest.mark.unit
class TestStreamProducer:

    def test_connect_requires_reachable_broker(self, broker):
        broker.down = True
        producer = StreamProducer(producer_factory=lambda: FakeProducer(broker))
        with pytest.raises(KafkaException):
            producer.connect()

    def test_publish_before_connect_fails(self, broker):
        producer = StreamProducer(producer_factory=lambda: FakeProducer(broker))
        with pytest.raises(DependencyUnavailable):
            producer.publish(make_purchase())

    def test_publish_appends_keyed_message(self, broker, stream_producer):
        stream_producer.connect()
        purchase = make_purchase("u1")

        stream_producer.publish(purchase)

        partition = broker.partition_for(b"u1")
        [msg] = broker.log[partition]
        assert msg.key() == b"u1"
        assert json.loads(msg.value())["userid"] == "u1"

    def test_same_user_lands_on_same_partition_in_order(self, broker, stream_producer):
        stream_producer.connect()
        first, second = make_purchase("u1", 1.0), make_purchase("u1", 2.0)

        stream_producer.publish(first)
        stream_producer.publish(second)

        msgs = broker.log[broker.partition_for(b"u1")]
        assert [json.loads(m.value())["price"] for m in msgs] == [1.0, 2.0]

    def test_delivery_error_raises_publish_error(self, broker, stream_producer):
        stream_producer.connect()
        broker.down = True

        with pytest.raises(PublishError):
            stream_producer.publish(make_purchase())

        assert all(not msgs for msgs in broker.log.values())

    def test_unconfirmed_delivery_raises_publish_error(self, broker):
        producer = StreamProducer(producer_factory=lambda: SilentProducer(broker), timeout=0.01)
        producer.connect()

        with pytest.raises(PublishError, match="not confirmed"):
            producer.publish(make_purchase())

    def test_check_detects_lost_broker(self, broker, stream_producer):
        stream_producer.connect()
        stream_producer.check()

        broker.down = True
        with pytest.raises(KafkaException):
            stream_producer.check()

    def test_close_disconnects(self, stream_producer):
        stream_producer.connect()
        stream_producer.close()

        with pytest.raises(DependencyUnavailable):
            stream_producer.publish(make_purchase())
