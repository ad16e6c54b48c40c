"""
订单领域实体 - 订单聚合根（仅支付状态可变）
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class PaymentStatus(str, Enum):
    """订单支付状态枚举"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


# The only permitted payment status transitions. Reopening a failed order for
# a new payment attempt goes through OrderRepository.reopen_for_new_attempt.
ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset(),
}


def can_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Address:
    name: str
    line1: str
    city: str
    state: str
    postal_code: str
    country: str
    line2: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "line1": self.line1,
            "line2": self.line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Address":
        return cls(
            name=data["name"],
            line1=data["line1"],
            line2=data.get("line2"),
            city=data["city"],
            state=data["state"],
            postal_code=data["postal_code"],
            country=data["country"],
        )


@dataclass
class OrderItem:
    product_id: int
    name: str
    quantity: int
    price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


@dataclass
class PaymentStatusDetails:
    """一次状态转换需要一并持久化的字段"""
    payment_intent_id: Optional[str] = None
    paid_amount: Optional[Decimal] = None
    refunded_amount: Optional[Decimal] = None
    failure_reason: Optional[str] = None
    payment_attempt: Optional[int] = None


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. 订单号创建后不可变
    2. 订单总额不可变（退款单独记录在 refunded_amount）
    3. 支付状态只能沿 ALLOWED_TRANSITIONS 转换
    """

    id: Optional[int]
    order_number: Optional[str]
    customer_email: str
    shipping_address: Address
    billing_address: Address
    items: list[OrderItem]
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    total: Decimal
    currency: str = "usd"
    shipping_method: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_intent_id: Optional[str] = None
    payment_attempt: int = 1
    paid_amount: Optional[Decimal] = None
    refunded_amount: Decimal = field(default_factory=lambda: Decimal("0"))
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.total < 0:
            raise DomainValidationException(f"Order total must not be negative: {self.total}", field="total")
        if not self.items:
            raise DomainValidationException("Order must contain at least one item", field="items")
        self.payment_status = PaymentStatus(self.payment_status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def refundable_amount(self) -> Decimal:
        return self.total - (self.refunded_amount or Decimal("0"))

    def is_settled(self) -> bool:
        """已支付（含退款）的订单不能再发起支付"""
        return self.payment_status in (
            PaymentStatus.PAID,
            PaymentStatus.REFUNDED,
            PaymentStatus.PARTIALLY_REFUNDED,
        )

