"""customer-management configuration.

This module only reads environment variables, so the service can run
locally, in Docker or in Kubernetes without touching application logic, and
so it is obvious at a glance what the service depends on.

All defaults are reasonable for local development.
"""

from __future__ import annotations

import os

# --- HTTP --------------------------------------------------------------------
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "3001"))

# --- Kafka -------------------------------------------------------------------
# Kafka bootstrap servers (broker addresses). Example: "kafka:9092"
KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")

# Kafka topic for purchase events
KAFKA_TOPIC: str = os.getenv("KAFKA_TOPIC", "purchases")

KAFKA_CLIENT_ID: str = os.getenv("KAFKA_CLIENT_ID", "customer-management")

# Consumer group id:
# - Offsets in Kafka are tracked per consumer group.
# - A brand new group starts at the end of the topic (auto.offset.reset=latest),
#   so renaming it skips whatever was published before.
KAFKA_GROUP_ID: str = os.getenv("KAFKA_GROUP_ID", "purchase-group")

# --- MongoDB -----------------------------------------------------------------
# Mongo connection string. The database in the URI wins over MONGO_DB.
MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017/purchases")

# Database name used when the URI does not name one
MONGO_DB: str = os.getenv("MONGO_DB", "purchases")

# Collection name
MONGO_COLLECTION: str = os.getenv("MONGO_COLLECTION", "purchases")

# --- Lifecycle ---------------------------------------------------------------
RETRY_DELAY_SECONDS: float = float(os.getenv("RETRY_DELAY_SECONDS", "5"))
HEALTH_CHECK_INTERVAL_SECONDS: float = float(os.getenv("HEALTH_CHECK_INTERVAL_SECONDS", "10"))

# GET /purchases never returns more than this many documents.
RECENT_PURCHASES_LIMIT = 500
