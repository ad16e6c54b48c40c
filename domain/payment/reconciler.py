"""
订单支付对账 - 将领域事件应用到订单支付状态

业务规则：
1. 每次转换都是带守卫的条件更新（compare-and-swap），重复投递只会生效一次
2. 失败通知永远不会把已支付订单降级
3. 退款只能作用于 paid 状态的订单，其他状态视为数据不一致并上报
4. 无法关联订单的事件不产生任何状态变更
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from domain.order.entity import (
    Order,
    PaymentStatus,
    PaymentStatusDetails,
    can_transition,
)
from domain.order.events import OrderPaid, OrderPaymentFailed, OrderRefunded
from domain.order.repository import OrderRepository
from domain.payment.events import (
    DomainEvent,
    PaymentFailed,
    PaymentSucceeded,
    RefundIssued,
    UnknownEvent,
)


class ReconcileResult(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    STALE = "stale"
    UNRESOLVABLE = "unresolvable"
    ORDER_NOT_FOUND = "order_not_found"
    INVALID_TRANSITION = "invalid_transition"
    IGNORED = "ignored"


@dataclass
class ReconcileOutcome:
    result: ReconcileResult
    event_kind: str
    event_type: str
    event_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    previous_status: Optional[PaymentStatus] = None
    new_status: Optional[PaymentStatus] = None
    verified: bool = True
    message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": self.result.value,
            "event_kind": self.event_kind,
            "event_type": self.event_type,
            "event_id": self.event_id,
            "payment_intent_id": self.payment_intent_id,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "previous_status": self.previous_status.value if self.previous_status else None,
            "new_status": self.new_status.value if self.new_status else None,
            "verified": self.verified,
            "message": self.message,
        }


@dataclass
class TransitionPlan:
    """对单个订单应用单个事件的决策结果（纯计算，无副作用）"""
    result: ReconcileResult
    target: Optional[PaymentStatus] = None
    details: PaymentStatusDetails = field(default_factory=PaymentStatusDetails)
    message: Optional[str] = None


def plan_transition(order: Order, event: DomainEvent) -> TransitionPlan:
    current = order.payment_status

    if isinstance(event, PaymentSucceeded):
        if current == PaymentStatus.PENDING:
            return TransitionPlan(
                result=ReconcileResult.APPLIED,
                target=PaymentStatus.PAID,
                details=PaymentStatusDetails(
                    payment_intent_id=event.payment_intent_id,
                    paid_amount=event.amount if event.amount is not None else order.total,
                ),
            )
        if current in (PaymentStatus.PAID, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED):
            return TransitionPlan(result=ReconcileResult.DUPLICATE, message=f"order already {current.value}")
        return TransitionPlan(
            result=ReconcileResult.INVALID_TRANSITION,
            message=f"payment succeeded on order in status {current.value}",
        )

    if isinstance(event, PaymentFailed):
        if current == PaymentStatus.PENDING:
            return TransitionPlan(
                result=ReconcileResult.APPLIED,
                target=PaymentStatus.FAILED,
                details=PaymentStatusDetails(
                    payment_intent_id=event.payment_intent_id,
                    failure_reason=event.reason,
                ),
            )
        return TransitionPlan(result=ReconcileResult.DUPLICATE, message=f"order already {current.value}")

    if isinstance(event, RefundIssued):
        if current != PaymentStatus.PAID:
            return TransitionPlan(
                result=ReconcileResult.INVALID_TRANSITION,
                message=f"refund issued on order in status {current.value}",
            )
        paid_total = order.paid_amount if order.paid_amount is not None else order.total
        # A refund without an amount is a full refund of the payment
        refunded = event.amount if event.amount is not None else paid_total
        target = PaymentStatus.REFUNDED if refunded >= paid_total else PaymentStatus.PARTIALLY_REFUNDED
        return TransitionPlan(
            result=ReconcileResult.APPLIED,
            target=target,
            details=PaymentStatusDetails(refunded_amount=refunded),
        )

    return TransitionPlan(result=ReconcileResult.IGNORED, message=f"unhandled event type {event.event_type!r}")


class OrderReconciler:
    """
    订单对账领域服务

    职责：
    1. 根据事件关联订单（失败即上报，不猜测订单）
    2. 按状态机决定转换并以条件更新持久化
    3. 仅在实际发生转换时收集订单通知事件
    """

    def __init__(self, order_repository: OrderRepository):
        self.order_repository = order_repository
        self.events: List = []  # 领域事件收集

    def _outcome(self, event: DomainEvent, result: ReconcileResult, **kwargs) -> ReconcileOutcome:
        ref = event.order_ref
        kwargs.setdefault("order_id", ref.order_id if ref else None)
        kwargs.setdefault("order_number", ref.order_number if ref else None)
        return ReconcileOutcome(
            result=result,
            event_kind=event.kind.value,
            event_type=event.event_type,
            event_id=event.event_id,
            payment_intent_id=event.payment_intent_id,
            verified=event.verified,
            **kwargs,
        )

    async def apply(self, event: DomainEvent) -> ReconcileOutcome:
        if isinstance(event, UnknownEvent):
            return self._outcome(event, ReconcileResult.IGNORED, message="event type not reconciled")

        ref = event.order_ref
        if ref is None:
            return self._outcome(event, ReconcileResult.UNRESOLVABLE, message="order correlation missing from metadata")

        order = await self.order_repository.get_by_id(ref.order_id)
        if order is None:
            return self._outcome(event, ReconcileResult.ORDER_NOT_FOUND, message="no order for correlated id")

        if ref.order_number and order.order_number and ref.order_number != order.order_number:
            return self._outcome(
                event,
                ReconcileResult.UNRESOLVABLE,
                order_number=order.order_number,
                previous_status=order.payment_status,
                message=f"metadata order number {ref.order_number!r} does not match order",
            )

        if (
            event.payment_intent_id
            and order.payment_intent_id
            and event.payment_intent_id != order.payment_intent_id
        ):
            # Event belongs to an earlier payment attempt of this order
            return self._outcome(
                event,
                ReconcileResult.STALE,
                order_number=order.order_number,
                previous_status=order.payment_status,
                message=f"intent superseded by {order.payment_intent_id}",
            )

        plan = plan_transition(order, event)
        if plan.target is not None and not can_transition(order.payment_status, plan.target):
            plan = TransitionPlan(
                result=ReconcileResult.INVALID_TRANSITION,
                message=f"{order.payment_status.value} -> {plan.target.value} not permitted",
            )
        if plan.target is None:
            return self._outcome(
                event,
                plan.result,
                order_number=order.order_number,
                previous_status=order.payment_status,
                new_status=order.payment_status,
                message=plan.message,
            )

        updated = await self.order_repository.update_payment_status(
            order.id,  # type: ignore[arg-type]
            order.payment_status,
            plan.target,
            plan.details,
        )
        if not updated:
            # Another delivery won the compare-and-swap
            return self._outcome(
                event,
                ReconcileResult.DUPLICATE,
                order_number=order.order_number,
                previous_status=order.payment_status,
                message="concurrent status update",
            )

        self._record(order, event, plan)
        return self._outcome(
            event,
            ReconcileResult.APPLIED,
            order_number=order.order_number,
            previous_status=order.payment_status,
            new_status=plan.target,
        )

    def _record(self, order: Order, event: DomainEvent, plan: TransitionPlan) -> None:
        common = dict(
            order_id=order.id,
            order_number=order.order_number,
            payment_intent_id=event.payment_intent_id or order.payment_intent_id,
        )
        if plan.target == PaymentStatus.PAID:
            self.events.append(OrderPaid(amount=plan.details.paid_amount, **common))
        elif plan.target == PaymentStatus.FAILED:
            self.events.append(OrderPaymentFailed(reason=plan.details.failure_reason, **common))
        elif plan.target in (PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED):
            self.events.append(OrderRefunded(
                refunded_amount=plan.details.refunded_amount,
                full=plan.target == PaymentStatus.REFUNDED,
                **common,
            ))

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
