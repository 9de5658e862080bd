"""MongoDB access for customer-management.

This module has one job: handle MongoDB interactions.

Key design choice (important):
- Every insert creates a new document with a store-assigned `_id`.
- There is no idempotency key. The consumer is at-least-once: if the process
  dies after an insert but before the Kafka offset commit, the message is
  redelivered and stored a second time. That duplicate is accepted.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection

from purchase_shared.errors import DependencyUnavailable
from purchase_shared.lifecycle import Dependency
from purchase_shared.logger_config import log

from .config import MONGO_COLLECTION, MONGO_DB, MONGO_URI, RECENT_PURCHASES_LIMIT


def create_client() -> MongoClient:
    """Create a MongoClient.

    `tz_aware=True` gives back timezone-aware UTC datetimes, so timestamps
    read from the store compare and serialize like the ones we wrote.
    """
    return MongoClient(MONGO_URI, serverSelectionTimeoutMS=5000, tz_aware=True)


def get_collection(client) -> Collection:
    """Return the purchases collection and make sure its indexes exist.

    - (userid, timestamp desc) serves GET /purchases/{userid}
    - (timestamp desc) serves GET /purchases
    """
    db = client.get_default_database(default=MONGO_DB)
    collection = db[MONGO_COLLECTION]

    collection.create_index([("userid", ASCENDING), ("timestamp", DESCENDING)])
    collection.create_index([("timestamp", DESCENDING)])
    return collection


def insert_purchase(collection, purchase) -> dict[str, Any]:
    """Insert a purchase as a new document and return it, `_id` included.

    `purchase` is anything with username/userid/price/timestamp attributes
    (a decoded `PurchaseEvent` or a validated `Purchase`).

    Errors from pymongo propagate; the caller decides whether that means
    "don't commit the offset" or "answer 500".
    """
    doc = {
        "username": purchase.username,
        "userid": purchase.userid,
        "price": purchase.price,
        "timestamp": purchase.timestamp,
    }
    # insert_one adds the generated `_id` to `doc`.
    collection.insert_one(doc)
    log.info("Inserted purchase", purchase_id=str(doc["_id"]), userid=purchase.userid)
    return doc


def get_purchases_by_user(collection, user_id: str) -> list[dict[str, Any]]:
    """Return purchases for a user, newest first."""
    # Equality match only: "%" or ".*" are literal user ids here.
    return list(collection.find({"userid": user_id}).sort("timestamp", DESCENDING))


def get_recent_purchases(collection, limit: int = RECENT_PURCHASES_LIMIT) -> list[dict[str, Any]]:
    """Return the `limit` most recent purchases across all users, newest first."""
    return list(collection.find({}).sort("timestamp", DESCENDING).limit(limit))


class MongoStore(Dependency):
    """The MongoDB connection, supervised as the `store` dependency."""

    name = "store"

    def __init__(self, client_factory: Callable[[], MongoClient] = create_client):
        self._client_factory = client_factory
        self._client: Optional[MongoClient] = None
        self._collection: Optional[Collection] = None

    @property
    def collection(self) -> Collection:
        collection = self._collection
        if collection is None:
            raise DependencyUnavailable(self.name, "MongoDB not connected")
        return collection

    def connect(self) -> None:
        client = self._client_factory()
        try:
            # MongoClient connects lazily; ping forces server selection.
            client.admin.command("ping")
            collection = get_collection(client)
        except Exception:
            client.close()
            raise
        self._client = client
        self._collection = collection

    def check(self) -> None:
        client = self._client
        if client is None:
            raise DependencyUnavailable(self.name, "MongoDB not connected")
        client.admin.command("ping")

    def close(self) -> None:
        client, self._client, self._collection = self._client, None, None
        if client is not None:
            client.close()
