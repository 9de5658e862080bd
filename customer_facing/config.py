"""customer-facing configuration.

The customer-facing service is the public entry point:
- It accepts a buy request over HTTP.
- It publishes a Kafka event keyed by userid.
- It proxies read requests to customer-management.

Everything is controlled by environment variables so this service can run
anywhere (local, Docker, Kubernetes) without code changes.
"""

from __future__ import annotations

import os

# HTTP
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "3000"))

# Kafka
KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
KAFKA_TOPIC: str = os.getenv("KAFKA_TOPIC", "purchases")
KAFKA_CLIENT_ID: str = os.getenv("KAFKA_CLIENT_ID", "customer-facing")

# How long POST /buy waits for the broker to acknowledge the event.
PUBLISH_TIMEOUT_SECONDS: float = float(os.getenv("PUBLISH_TIMEOUT_SECONDS", "5"))

# customer-management base URL (cluster DNS name or internal IP)
CUSTOMER_MANAGEMENT_URL: str = os.getenv("CUSTOMER_MANAGEMENT_URL", "http://localhost:3001")
DOWNSTREAM_TIMEOUT_SECONDS: float = float(os.getenv("DOWNSTREAM_TIMEOUT_SECONDS", "5"))

# Lifecycle
RETRY_DELAY_SECONDS: float = float(os.getenv("RETRY_DELAY_SECONDS", "5"))
HEALTH_CHECK_INTERVAL_SECONDS: float = float(os.getenv("HEALTH_CHECK_INTERVAL_SECONDS", "10"))
