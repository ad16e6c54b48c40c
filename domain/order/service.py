"""
订单领域服务 - 下单定价与支付尝试管理
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from .entity import Address, Order, OrderItem, PaymentStatus
from .repository import OrderRepository
from domain.common.exceptions import (
    DomainValidationException,
    OrderAlreadyPaidException,
    PaymentAttemptConflictException,
)
from domain.payment.money import quantize_amount


@dataclass(frozen=True)
class PricingPolicy:
    tax_rate: Decimal = Decimal("0.08")
    free_shipping_threshold: Decimal = Decimal("200")
    flat_shipping: Decimal = Decimal("15")
    currency: str = "usd"


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    total: Decimal
    shipping_method: str


def price_items(items: List[OrderItem], policy: PricingPolicy) -> OrderTotals:
    """
    计算订单金额

    业务规则：
    1. 小计 = Σ 单价 × 数量
    2. 税费按小计计算
    3. 小计超过免运费门槛时免运费，否则收取固定运费
    """
    if not items:
        raise DomainValidationException("Order must contain at least one item", field="items")
    for item in items:
        if item.quantity <= 0:
            raise DomainValidationException(f"Quantity must be positive: {item.quantity}", field="quantity")
        if item.price < 0:
            raise DomainValidationException(f"Price must not be negative: {item.price}", field="price")

    currency = policy.currency
    subtotal = quantize_amount(sum((item.subtotal for item in items), Decimal("0")), currency)
    tax = quantize_amount(subtotal * policy.tax_rate, currency)
    free = subtotal > policy.free_shipping_threshold
    shipping = Decimal("0") if free else policy.flat_shipping
    shipping = quantize_amount(shipping, currency)
    return OrderTotals(
        subtotal=subtotal,
        tax=tax,
        shipping_cost=shipping,
        total=subtotal + tax + shipping,
        shipping_method="Free Shipping" if free else "Standard Shipping",
    )


def ensure_payable(order: Order) -> None:
    if order.is_settled():
        raise OrderAlreadyPaidException(order.order_number or str(order.id), order.payment_status.value)


class OrderDomainService:
    """
    订单领域服务

    职责：
    1. 创建订单（定价、初始状态 pending、无支付意图）
    2. 关联支付意图
    3. 失败订单的重新支付建模为新的支付尝试，而不是状态回退
    """

    def __init__(self, order_repository: OrderRepository, policy: Optional[PricingPolicy] = None):
        self.order_repository = order_repository
        self.policy = policy or PricingPolicy()

    async def place_order(
        self,
        *,
        items: List[OrderItem],
        customer_email: str,
        shipping_address: Address,
        billing_address: Address,
    ) -> Order:
        totals = price_items(items, self.policy)
        now = datetime.now(timezone.utc)
        order = Order(
            id=None,
            order_number=None,
            customer_email=customer_email,
            shipping_address=shipping_address,
            billing_address=billing_address,
            items=items,
            subtotal=totals.subtotal,
            tax=totals.tax,
            shipping_cost=totals.shipping_cost,
            total=totals.total,
            currency=self.policy.currency,
            shipping_method=totals.shipping_method,
            payment_status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        return await self.order_repository.create(order)

    async def attach_intent(self, order: Order, payment_intent_id: str) -> bool:
        attached = await self.order_repository.attach_payment_intent(
            order.id,  # type: ignore[arg-type]
            payment_intent_id,
            expected_intent_id=order.payment_intent_id,
        )
        if attached:
            order.payment_intent_id = payment_intent_id
        return attached

    async def open_new_attempt(self, order: Order, payment_intent_id: str) -> Order:
        """
        为失败订单开启新的支付尝试

        业务规则：新的支付意图替换旧意图，attempt 计数 +1，状态回到 pending；
        旧意图的后续通知会被对账识别为过期事件。
        """
        if order.payment_status != PaymentStatus.FAILED:
            raise DomainValidationException(
                f"Only failed orders can open a new payment attempt: {order.payment_status.value}",
                field="payment_status",
            )
        attempt = order.payment_attempt + 1
        reopened = await self.order_repository.reopen_for_new_attempt(
            order.id,  # type: ignore[arg-type]
            payment_intent_id,
            attempt,
        )
        if not reopened:
            raise PaymentAttemptConflictException(order.order_number or str(order.id))
        order.payment_status = PaymentStatus.PENDING
        order.payment_intent_id = payment_intent_id
        order.payment_attempt = attempt
        order.failure_reason = None
        return order
