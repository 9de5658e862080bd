"""
Pytest configuration and fixtures for the purchase pipeline tests.

Kafka and MongoDB are replaced by the in-memory fakes in `tests.fakes`; the
services themselves (lifecycle thread, FastAPI apps, routes) run for real.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from customer_facing.api_client import CustomerManagementClient
from customer_facing.kafka_producer import StreamProducer
from customer_facing.main import create_app as create_facing_app
from customer_management.kafka_consumer import PurchaseSubscription
from customer_management.main import create_app as create_management_app
from customer_management.mongo import MongoStore
from purchase_shared.lifecycle import ServiceLifecycle
from tests.fakes import FakeBroker, FakeConsumer, FakeMongoServer, FakeProducer
from tests.helpers import wait_ready

FAST_RETRY = 0.05


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that exercise one module in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Tests that run full apps against in-memory Kafka/MongoDB"
    )


# =======================
# INFRASTRUCTURE FAKES
# =======================

@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def mongo_server():
    return FakeMongoServer()


@pytest.fixture
def collection(mongo_server):
    return mongo_server.collection


# =======================
# CUSTOMER-MANAGEMENT
# =======================

@pytest.fixture
def store(mongo_server):
    return MongoStore(client_factory=mongo_server.client)


@pytest.fixture
def consumers():
    """Every FakeConsumer created by the subscription, in order."""
    return []


@pytest.fixture
def subscription(broker, store, consumers):
    def factory():
        consumer = FakeConsumer(broker)
        consumers.append(consumer)
        return consumer

    return PurchaseSubscription(
        store,
        consumer_factory=factory,
        poll_timeout=0.01,
        connect_timeout=0.1,
        check_interval=FAST_RETRY,
    )


@pytest.fixture
def management_lifecycle(store, subscription):
    return ServiceLifecycle(
        "customer-management",
        [store, subscription],
        worker=subscription.run,
        retry_delay=FAST_RETRY,
        check_interval=FAST_RETRY,
    )


@pytest.fixture
def management_app(store, subscription, management_lifecycle):
    return create_management_app(store, subscription, management_lifecycle)


@pytest.fixture
def management_client(management_app, management_lifecycle):
    with TestClient(management_app) as client:
        wait_ready(management_lifecycle)
        yield client


# =======================
# CUSTOMER-FACING
# =======================

@pytest.fixture
def stream_producer(broker):
    return StreamProducer(topic=broker.topic, producer_factory=lambda: FakeProducer(broker), timeout=0.1)


@pytest.fixture
def facing_lifecycle(stream_producer):
    return ServiceLifecycle(
        "customer-facing",
        [stream_producer],
        retry_delay=FAST_RETRY,
        check_interval=FAST_RETRY,
    )


@pytest.fixture
def downstream():
    """Handler behind the MockTransport; tests replace `downstream.handler`."""

    class Downstream:
        handler = staticmethod(lambda request: httpx.Response(200, json=[]))
        requests = []

        def __call__(self, request):
            self.requests.append(request)
            return self.handler(request)

    return Downstream()


@pytest.fixture
def management_api_client(downstream):
    return CustomerManagementClient(
        base_url="http://customer-management:3001",
        timeout=0.5,
        transport=httpx.MockTransport(downstream),
    )


@pytest.fixture
def facing_app(stream_producer, management_api_client, facing_lifecycle):
    return create_facing_app(stream_producer, management_api_client, facing_lifecycle)


@pytest.fixture
def facing_client(facing_app, facing_lifecycle):
    with TestClient(facing_app) as client:
        wait_ready(facing_lifecycle)
        yield client
