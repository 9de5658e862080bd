"""Pydantic models for customer-facing.

We validate input at the HTTP boundary so that:
- bad requests fail fast with a 400 and a clear error
- Kafka only receives valid events
"""

from __future__ import annotations

from pydantic import BaseModel

from purchase_shared.models import Purchase, PurchaseFields


class BuyRequest(PurchaseFields):
    """Request body for `POST /buy`. The timestamp is always assigned server-side."""


class BuyResponse(BaseModel):
    """Response body for a recorded purchase."""

    message: str = "Purchase recorded"
    purchase: Purchase
