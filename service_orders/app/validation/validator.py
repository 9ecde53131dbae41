"""
Business-rule validation for ingested orders.
"""

import re
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from ..models import Delivery, Order, OrderItem, Payment


EMAIL_PATTERN = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$")

_ZERO_TIME = datetime(1, 1, 1)


class OrderValidator:
    """Side-effect free checks over an order's required fields and ranges.

    ``validate_order`` is the pass/fail predicate; ``explain`` lists the
    rule names that failed so the reason can be logged or dead-lettered.
    """

    def __init__(self):
        self._rules: List[Tuple[str, Callable[[Order], bool]]] = [
            ("required_fields", self._check_required_fields),
            ("delivery", lambda order: self._check_delivery(order.delivery)),
            ("payment", lambda order: self._check_payment(order.payment)),
            ("items", lambda order: self._check_items(order.items)),
            ("date_created", lambda order: self._check_date(order.date_created)),
        ]

    def validate_order(self, order: Order) -> bool:
        """True only when every rule passes."""
        return all(check(order) for _, check in self._rules)

    def explain(self, order: Order) -> List[str]:
        """Names of the failing rules, empty for a valid order."""
        return [name for name, check in self._rules if not check(order)]

    @staticmethod
    def _check_required_fields(order: Order) -> bool:
        return all((
            order.order_uid,
            order.track_number,
            order.entry,
            order.locale,
            order.customer_id,
            order.delivery_service,
            order.shardkey,
            order.oof_shard,
        ))

    def _check_delivery(self, delivery: Delivery) -> bool:
        return all((
            delivery.name,
            delivery.phone,
            delivery.zip,
            delivery.city,
            delivery.address,
            delivery.region,
        )) and self.is_valid_email(delivery.email)

    @staticmethod
    def is_valid_email(email: str) -> bool:
        return bool(email) and EMAIL_PATTERN.match(email.lower()) is not None

    @staticmethod
    def _check_payment(payment: Payment) -> bool:
        return (
            bool(payment.transaction)
            and bool(payment.currency)
            and bool(payment.provider)
            and bool(payment.bank)
            and payment.amount >= 0
            and payment.delivery_cost >= 0
            and payment.goods_total >= 0
            and payment.custom_fee >= 0
        )

    def _check_items(self, items: List[OrderItem]) -> bool:
        if not items:
            return False
        return all(self._check_item(item) for item in items)

    @staticmethod
    def _check_item(item: OrderItem) -> bool:
        return (
            item.chrt_id > 0
            and item.nm_id > 0
            and item.price >= 0
            and item.total_price >= 0
            and 0 <= item.sale <= 100
            and bool(item.track_number)
            and bool(item.rid)
            and bool(item.name)
            and bool(item.size)
            and bool(item.brand)
        )

    @staticmethod
    def _check_date(date_created: Optional[datetime]) -> bool:
        if date_created is None:
            return False
        if date_created.tzinfo is not None:
            try:
                date_created = date_created.astimezone(timezone.utc).replace(tzinfo=None)
            except OverflowError:
                # offset pushes the instant before year 1
                return False
        return date_created != _ZERO_TIME
