"""
Application service orchestrating webhook reconciliation and refunds.

This class depends only on the application ports, the unit of work and DTOs.
Gateway and verifier implementations are provided by infrastructure and must
be injected from the composition root (API), keeping dependencies one-way.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional

from application.dtos.payments import (
    OrderPaymentView,
    RefundHandle,
    RefundRequest,
    WebhookAck,
)
from application.ports.payment_gateway import (
    OrderEventPublisher,
    PaymentGateway,
    WebhookVerifier,
)
from core.logging_config import get_logger
from domain.common.exceptions import (
    OrderNotFoundException,
    OrderNotRefundableException,
    OrderPaymentMissingException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, PaymentStatus
from domain.payment.events import DomainEvent
from domain.payment.interpreter import interpret
from domain.payment.reconciler import OrderReconciler, ReconcileOutcome, ReconcileResult


logger = get_logger(__name__)


def to_payment_view(order: Order) -> OrderPaymentView:
    return OrderPaymentView(
        order_id=order.id,  # type: ignore[arg-type]
        order_number=order.order_number or "",
        payment_status=order.payment_status.value,
        total=order.total,
        currency=order.currency,
        paid_amount=order.paid_amount,
        refunded_amount=order.refunded_amount,
        failure_reason=order.failure_reason,
        payment_intent_id=order.payment_intent_id,
        payment_attempt=order.payment_attempt,
    )


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        verifier: WebhookVerifier,
        publisher: Optional[OrderEventPublisher] = None,
        *,
        validate_refunds_locally: bool = False,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self.verifier = verifier
        self.publisher = publisher
        self.validate_refunds_locally = validate_refunds_locally

    async def handle_webhook(self, body: bytes, signature: Optional[str]) -> WebhookAck:
        # Raises PaymentSignatureError before anything is interpreted
        webhook = self.verifier.verify_and_parse(body, signature)
        if not webhook.verified:
            logger.warning(
                "payment_webhook_unverified",
                event_id=webhook.event_id,
                event_type=webhook.event_type,
            )
        event = interpret(webhook.payload, verified=webhook.verified)
        logger.info(
            "payment_webhook_parsed",
            provider=self.gateway.provider,
            event_id=event.event_id,
            event_type=event.event_type,
            event_kind=event.kind.value,
        )
        outcome = await self.reconcile(event)
        return WebhookAck(outcome=outcome.to_dict())

    async def reconcile(self, event: DomainEvent) -> ReconcileOutcome:
        async with self._uow_factory() as uow:
            reconciler = OrderReconciler(uow.order_repository)
            outcome = await reconciler.apply(event)
            await uow.commit()
            notifications = reconciler.clear_events()

        self._log_outcome(outcome)
        if self.publisher is not None:
            for notification in notifications:
                await self.publisher.publish(notification)
        return outcome

    def _log_outcome(self, outcome: ReconcileOutcome) -> None:
        fields = outcome.to_dict()
        fields.pop("result")
        result = outcome.result
        if result == ReconcileResult.APPLIED:
            logger.info("payment_reconcile_applied", **fields)
        elif result in (ReconcileResult.DUPLICATE, ReconcileResult.IGNORED):
            # Routine under at-least-once delivery
            logger.info(f"payment_reconcile_{result.value}", **fields)
        elif result == ReconcileResult.STALE:
            if outcome.event_kind == "PaymentSucceeded":
                logger.error("payment_reconcile_superseded_intent_succeeded", **fields)
            else:
                logger.info("payment_reconcile_stale", **fields)
        elif result in (ReconcileResult.UNRESOLVABLE, ReconcileResult.ORDER_NOT_FOUND):
            logger.warning(f"payment_reconcile_{result.value}", **fields)
        else:
            logger.error("payment_reconcile_invalid_transition", **fields)

    async def refund_order(self, req: RefundRequest) -> RefundHandle:
        """Ask the processor for a refund.

        The returned handle only acknowledges the request; the order status
        changes when the corresponding refund webhook is reconciled.
        """
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_number(req.order_number)
        if order is None:
            raise OrderNotFoundException(order_number=req.order_number)
        if not order.payment_intent_id:
            raise OrderPaymentMissingException(req.order_number)
        if self.validate_refunds_locally:
            self._guard_refund(order, req.amount)

        logger.info(
            "payment_refund_request",
            order_number=req.order_number,
            payment_intent_id=order.payment_intent_id,
            amount=str(req.amount) if req.amount is not None else "full",
            reason=req.reason,
        )
        handle = await self.gateway.create_refund(order.payment_intent_id, req.amount, currency=order.currency)
        logger.info(
            "payment_refund_accepted",
            order_number=req.order_number,
            refund_id=handle.refund_id,
            status=handle.status,
        )
        return handle

    @staticmethod
    def _guard_refund(order: Order, amount: Optional[Decimal]) -> None:
        if order.payment_status != PaymentStatus.PAID:
            raise OrderNotRefundableException(order.order_number or "", order.payment_status.value)
        available = order.refundable_amount
        if amount is not None and amount > available:
            raise OrderNotRefundableException(
                order.order_number or "",
                order.payment_status.value,
                requested=amount,
                available=available,
            )

    async def get_order(self, order_number: str) -> OrderPaymentView:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_number(order_number)
        if order is None:
            raise OrderNotFoundException(order_number=order_number)
        return to_payment_view(order)
