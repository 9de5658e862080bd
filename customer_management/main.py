"""customer-management FastAPI application.

Responsibilities:
- Run the Kafka subscription that writes purchases into MongoDB
  (a background thread owned by the service lifecycle).
- Serve read endpoints: `GET /purchases/{userid}` and `GET /purchases`.
- Accept direct writes on `POST /purchases`, bypassing Kafka. Meant for
  tests and operations, not for clients.

Why run the consumer inside this process?
- One deployable both consumes and serves HTTP.
- The consumer loop blocks, so it runs in the lifecycle's supervisor thread
  while uvicorn serves requests.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, HTTPException
from pymongo.errors import PyMongoError

from purchase_shared.errors import DependencyUnavailable
from purchase_shared.lifecycle import ServiceLifecycle
from purchase_shared.logger_config import log
from purchase_shared.models import Purchase
from purchase_shared.service import create_service_app

from .config import HEALTH_CHECK_INTERVAL_SECONDS, RECENT_PURCHASES_LIMIT, RETRY_DELAY_SECONDS
from .kafka_consumer import PurchaseSubscription
from .models import DirectPurchaseRequest, StoredPurchase
from .mongo import MongoStore, get_purchases_by_user, get_recent_purchases, insert_purchase

STORE_ERRORS = (DependencyUnavailable, PyMongoError)


def create_app(
    store: Optional[MongoStore] = None,
    subscription: Optional[PurchaseSubscription] = None,
    lifecycle: Optional[ServiceLifecycle] = None,
) -> FastAPI:
    """Wire the store, the subscription and the lifecycle into an app.

    Dependencies connect in order: store first, then the subscription, which
    writes into the store.
    """
    store = store or MongoStore()
    subscription = subscription or PurchaseSubscription(store)
    lifecycle = lifecycle or ServiceLifecycle(
        "customer-management",
        [store, subscription],
        worker=subscription.run,
        retry_delay=RETRY_DELAY_SECONDS,
        check_interval=HEALTH_CHECK_INTERVAL_SECONDS,
    )

    app = create_service_app("customer-management", lifecycle)

    @app.get("/purchases/{userid}", response_model=list[StoredPurchase])
    def get_user_purchases(userid: str):
        """Return all purchases for a user, newest first. Unknown users get []."""
        try:
            return get_purchases_by_user(store.collection, userid)
        except STORE_ERRORS as e:
            log.error("Error fetching purchases", userid=userid, error=str(e))
            raise HTTPException(status_code=500, detail="Failed to fetch purchases")

    @app.get("/purchases", response_model=list[StoredPurchase])
    def get_all_purchases():
        """Return the most recent purchases across all users, newest first."""
        try:
            return get_recent_purchases(store.collection, RECENT_PURCHASES_LIMIT)
        except STORE_ERRORS as e:
            log.error("Error fetching all purchases", error=str(e))
            raise HTTPException(status_code=500, detail="Failed to fetch purchases")

    @app.post("/purchases", status_code=201, response_model=StoredPurchase)
    def create_purchase(req: DirectPurchaseRequest):
        """Store a purchase directly, without going through Kafka."""
        purchase = Purchase.accept(req, req.timestamp)
        try:
            return insert_purchase(store.collection, purchase)
        except STORE_ERRORS as e:
            log.error("Error storing purchase", userid=purchase.userid, error=str(e))
            raise HTTPException(status_code=500, detail="Failed to store purchase")

    return app


app = create_app()
