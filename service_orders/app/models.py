"""
Order data models for the order cache service.

Parsing is deliberately lenient: absent fields fall back to their zero value
so that business rules are judged by the validator, not by the decoder.
"""

import json
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from shared.errors import OrderDecodeError


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _null_means_default(cls, data: Any) -> Any:
        # JSON null leaves the zero value in place
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class Delivery(_FrozenModel):
    """Recipient details."""
    name: str = ""
    phone: str = ""
    zip: str = ""
    city: str = ""
    address: str = ""
    region: str = ""
    email: str = ""


class Payment(_FrozenModel):
    """Payment details; monetary fields are in the order currency."""
    transaction: str = ""
    request_id: str = ""
    currency: str = ""
    provider: str = ""
    amount: float = 0.0
    payment_dt: int = 0  # unix seconds
    bank: str = ""
    delivery_cost: float = 0.0
    goods_total: float = 0.0
    custom_fee: float = 0.0


class OrderItem(_FrozenModel):
    """One line of an order."""
    chrt_id: int = 0
    track_number: str = ""
    price: float = 0.0
    rid: str = ""
    name: str = ""
    sale: float = 0.0
    size: str = ""
    total_price: float = 0.0
    nm_id: int = 0
    brand: str = ""
    status: int = 0


class Order(_FrozenModel):
    """An order as received from the stream and served from the cache."""
    order_uid: str = ""
    track_number: str = ""
    entry: str = ""
    locale: str = ""
    internal_signature: str = ""
    customer_id: str = ""
    delivery_service: str = ""
    shardkey: str = ""
    sm_id: int = 0
    date_created: Optional[datetime] = None
    oof_shard: str = ""

    delivery: Delivery = Field(default_factory=Delivery)
    payment: Payment = Field(default_factory=Payment)
    items: List[OrderItem] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: bytes) -> "Order":
        """Decode a raw stream payload.

        Raises OrderDecodeError when the payload is not a JSON object or a
        field has the wrong type.
        """
        try:
            data = json.loads(payload)
        except (ValueError, UnicodeDecodeError, RecursionError) as e:
            raise OrderDecodeError(f"unmarshal error: {e}")

        if not isinstance(data, dict):
            raise OrderDecodeError(
                f"unmarshal error: expected a JSON object, got {type(data).__name__}"
            )

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise OrderDecodeError(
                f"unmarshal error: {location}: {first.get('msg')}",
                {"error_count": e.error_count()}
            )

    def to_json(self) -> str:
        """Serialize with wire field names."""
        return self.model_dump_json()
