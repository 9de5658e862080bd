"""Pydantic models for customer-management's HTTP API.

The Kafka event contract lives in `purchase_shared.models`; these models
describe the direct-write request and the documents we return.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

from purchase_shared.models import PurchaseFields


class DirectPurchaseRequest(PurchaseFields):
    """Request body for `POST /purchases`.

    Same rules as `POST /buy`, but the caller may supply the timestamp
    (naive values are read as UTC). Defaults to now.
    """

    timestamp: Optional[datetime] = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class StoredPurchase(BaseModel):
    """A purchase document as returned by the read and write endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    username: str
    userid: str
    price: float
    timestamp: datetime

    @field_validator("id", mode="before")
    @classmethod
    def _object_id_to_str(cls, value):
        if isinstance(value, ObjectId):
            return str(value)
        return value
