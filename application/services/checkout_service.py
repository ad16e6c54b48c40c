"""
Checkout application service - places orders and hands out payment intents.
"""
from __future__ import annotations

import hashlib
from typing import Callable, Optional

from application.dtos.payments import (
    AddressDTO,
    CheckoutRequest,
    CheckoutResult,
    IntentHandle,
    IntentRequest,
)
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Address, Order, OrderItem, PaymentStatus
from domain.order.service import OrderDomainService, PricingPolicy, ensure_payable


logger = get_logger(__name__)


def _idempotency_key(order: Order, attempt: int) -> str:
    # Stable per order and attempt so a retried request cannot mint a second intent
    base = f"intent|{order.id}|{order.order_number}|{attempt}|{order.total}|{order.currency}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def _to_address(dto: AddressDTO) -> Address:
    return Address(
        name=dto.name,
        line1=dto.line1,
        line2=dto.line2,
        city=dto.city,
        state=dto.state,
        postal_code=dto.postal_code,
        country=dto.country,
    )


class CheckoutService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        policy: Optional[PricingPolicy] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self.policy = policy or PricingPolicy()

    async def checkout(self, req: CheckoutRequest) -> CheckoutResult:
        """Create the order (pending, no intent yet) and its first payment intent."""
        shipping = _to_address(req.shipping_address)
        billing = _to_address(req.billing_address) if req.billing_address else shipping
        items = [
            OrderItem(product_id=i.product_id, name=i.name, quantity=i.quantity, price=i.price)
            for i in req.items
        ]
        async with self._uow_factory() as uow:
            service = OrderDomainService(uow.order_repository, self.policy)
            order = await service.place_order(
                items=items,
                customer_email=str(req.email),
                shipping_address=shipping,
                billing_address=billing,
            )
        logger.info(
            "order_placed",
            order_id=order.id,
            order_number=order.order_number,
            total=str(order.total),
            currency=order.currency,
        )
        intent = await self._create_intent(order)
        async with self._uow_factory() as uow:
            service = OrderDomainService(uow.order_repository, self.policy)
            await service.attach_intent(order, intent.intent_id)
        return self._result(order, intent)

    async def start_payment(self, order_number: str) -> CheckoutResult:
        """Hand out a payment intent for an existing order.

        A pending order that already has an intent gets that intent back; a
        failed order opens a fresh attempt with a new intent.
        """
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_number(order_number)
        if order is None:
            raise OrderNotFoundException(order_number=order_number)

        ensure_payable(order)

        if order.payment_status == PaymentStatus.PENDING and order.payment_intent_id:
            intent = await self.gateway.retrieve_intent(order.payment_intent_id)
            logger.info("payment_intent_reused", order_number=order.order_number, intent_id=intent.intent_id)
            return self._result(order, intent)

        if order.payment_status == PaymentStatus.FAILED:
            intent = await self._create_intent(order, attempt=order.payment_attempt + 1)
            async with self._uow_factory() as uow:
                service = OrderDomainService(uow.order_repository, self.policy)
                await service.open_new_attempt(order, intent.intent_id)
            logger.info(
                "payment_attempt_opened",
                order_number=order.order_number,
                attempt=order.payment_attempt,
                intent_id=intent.intent_id,
            )
            return self._result(order, intent)

        # pending without an intent: previous intent creation never completed
        intent = await self._create_intent(order)
        async with self._uow_factory() as uow:
            service = OrderDomainService(uow.order_repository, self.policy)
            await service.attach_intent(order, intent.intent_id)
        return self._result(order, intent)

    async def _create_intent(self, order: Order, *, attempt: Optional[int] = None) -> IntentHandle:
        attempt = attempt or order.payment_attempt
        req = IntentRequest(
            order_id=order.id,  # type: ignore[arg-type]
            order_number=order.order_number or "",
            amount=order.total,
            currency=order.currency,
            customer_email=order.customer_email,
            shipping_address=AddressDTO(**order.shipping_address.to_dict()),
            idempotency_key=_idempotency_key(order, attempt),
        )
        logger.info(
            "payment_intent_create_request",
            order_id=order.id,
            order_number=order.order_number,
            attempt=attempt,
            idempotency_key=req.idempotency_key,
        )
        intent = await self.gateway.create_intent(req)
        logger.info(
            "payment_intent_created",
            order_id=order.id,
            order_number=order.order_number,
            intent_id=intent.intent_id,
            status=intent.status,
        )
        return intent

    @staticmethod
    def _result(order: Order, intent: IntentHandle) -> CheckoutResult:
        return CheckoutResult(
            client_secret=intent.client_secret,
            payment_intent_id=intent.intent_id,
            order_id=order.id,  # type: ignore[arg-type]
            order_number=order.order_number or "",
            amount=order.total,
            currency=order.currency,
        )
