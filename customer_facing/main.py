"""customer-facing FastAPI application.

Responsibilities:
- Accept buy requests and publish Kafka events.
- Provide a read endpoint that proxies to customer-management.

Important note:
This service does NOT write to MongoDB directly.
Writes happen asynchronously in customer-management's Kafka consumer, so a
purchase shows up in `/getAllUserBuys` shortly after `/buy` returns, not
necessarily immediately.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, HTTPException

from purchase_shared.errors import DependencyUnavailable, DownstreamError
from purchase_shared.lifecycle import ServiceLifecycle
from purchase_shared.logger_config import log
from purchase_shared.models import Purchase
from purchase_shared.service import create_service_app

from .api_client import CustomerManagementClient
from .config import HEALTH_CHECK_INTERVAL_SECONDS, RETRY_DELAY_SECONDS
from .kafka_producer import StreamProducer
from .models import BuyRequest, BuyResponse


def create_app(
    producer: Optional[StreamProducer] = None,
    client: Optional[CustomerManagementClient] = None,
    lifecycle: Optional[ServiceLifecycle] = None,
) -> FastAPI:
    """Wire the producer, the downstream client and the lifecycle into an app."""
    producer = producer or StreamProducer()
    client = client or CustomerManagementClient()
    lifecycle = lifecycle or ServiceLifecycle(
        "customer-facing",
        [producer],
        retry_delay=RETRY_DELAY_SECONDS,
        check_interval=HEALTH_CHECK_INTERVAL_SECONDS,
    )

    app = create_service_app("customer-facing", lifecycle)

    @app.post("/buy", status_code=201, response_model=BuyResponse)
    def buy(req: BuyRequest):
        """Stamp the purchase and publish it to Kafka.

        Returns once the broker confirmed delivery. The MongoDB write happens
        later in customer-management.
        """
        purchase = Purchase.accept(req)

        try:
            producer.publish(purchase)
        except DependencyUnavailable as e:
            log.error("Failed to publish purchase", userid=purchase.userid, error=e.message)
            raise HTTPException(status_code=500, detail="Failed to process purchase")

        return BuyResponse(purchase=purchase)

    @app.get("/getAllUserBuys/{userid}")
    def get_all_user_buys(userid: str):
        """Return all purchases for a user (proxied through customer-management)."""
        try:
            return client.get_all_user_buys(userid)
        except DownstreamError as e:
            log.error("Failed to fetch purchases", userid=userid, error=e.message)
            raise HTTPException(status_code=500, detail="Failed to fetch purchases")

    return app


app = create_app()
