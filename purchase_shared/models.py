"""Pydantic models for the purchase contract shared by both services.

The producer and the consumer must agree on what a purchase looks like on the
topic, so the contract lives here once instead of being copied per service.

Two levels of strictness:
- `PurchaseFields` carries the business rules (non-blank strings, positive
  finite price). It guards the public `/buy` path and the direct-write path.
- `PurchaseEvent` only checks that the required fields exist with the right
  types. The consumer uses it when reading the topic; business rules were
  already enforced before publication.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator

# strict: reject "12.5" and true; allow_inf_nan: reject NaN/Infinity.
Price = Annotated[float, Field(gt=0, strict=True, allow_inf_nan=False)]
NonBlankStr = Annotated[str, Field(min_length=1, strict=True)]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PurchaseFields(BaseModel):
    """The client-supplied part of a purchase.

    Fields:
        username: Display name of the buyer.
        userid: Grouping key. Also the Kafka message key, so one user's
            purchases always land on the same partition.
        price: Amount paid. Must be a JSON number greater than zero.
    """

    username: NonBlankStr
    userid: NonBlankStr
    price: Price

    @field_validator("username", "userid")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class Purchase(PurchaseFields):
    """A validated purchase with its acceptance time. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    timestamp: AwareDatetime

    @classmethod
    def accept(cls, fields: PurchaseFields, timestamp: datetime | None = None) -> "Purchase":
        """Stamp client fields with the acceptance time (now, unless given)."""
        return cls(
            username=fields.username,
            userid=fields.userid,
            price=fields.price,
            timestamp=timestamp or utcnow(),
        )


class PurchaseEvent(BaseModel):
    """Kafka event schema as read by the consumer.

    Only presence and types are checked here, not `price > 0`,
    except that empty strings and NaN/Infinity prices are rejected.
    Naive timestamps are read as UTC.
    """

    username: str = Field(min_length=1)
    userid: str = Field(min_length=1)
    price: float = Field(allow_inf_nan=False)
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
