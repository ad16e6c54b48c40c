from decimal import Decimal

import pytest

from application.dtos.payments import CheckoutRequest
from application.services.checkout_service import CheckoutService
from conftest import make_order
from domain.common.exceptions import (
    DomainValidationException,
    OrderAlreadyPaidException,
    OrderNotFoundException,
    PaymentAttemptConflictException,
)
from domain.order.entity import OrderItem, PaymentStatus
from domain.order.service import OrderDomainService, PricingPolicy, price_items


ADDRESS = {
    "name": "Jane Rider",
    "line1": "1 Trail Rd",
    "city": "Moab",
    "state": "UT",
    "postal_code": "84532",
    "country": "US",
}


def _checkout_request(price="105.36", quantity=1):
    return CheckoutRequest(
        items=[{"product_id": 7, "name": "LED light bar", "quantity": quantity, "price": price}],
        shipping_address=ADDRESS,
        email="jane@example.com",
    )


def test_pricing_with_flat_shipping():
    totals = price_items([OrderItem(product_id=1, name="x", quantity=1, price=Decimal("105.36"))], PricingPolicy())
    assert totals.subtotal == Decimal("105.36")
    assert totals.tax == Decimal("8.43")
    assert totals.shipping_cost == Decimal("15.00")
    assert totals.total == Decimal("128.79")


def test_pricing_free_shipping_above_threshold():
    totals = price_items([OrderItem(product_id=1, name="x", quantity=2, price=Decimal("150.00"))], PricingPolicy())
    assert totals.shipping_cost == Decimal("0.00")
    assert totals.shipping_method == "Free Shipping"
    assert totals.total == Decimal("324.00")


@pytest.mark.asyncio
async def test_checkout_creates_order_and_intent(uow_factory, gateway, order_repo, fake_stripe):
    service = CheckoutService(uow_factory, gateway)

    result = await service.checkout(_checkout_request())

    stored = order_repo.orders[result.order_id]
    assert stored.payment_status == PaymentStatus.PENDING
    assert stored.payment_intent_id == result.payment_intent_id
    assert result.order_number == f"ORD-{result.order_id}"
    assert result.client_secret
    params = fake_stripe.calls[0][1]
    assert params["amount"] == 12879
    assert params["metadata"]["orderId"] == str(result.order_id)


@pytest.mark.asyncio
async def test_start_payment_reuses_pending_intent(uow_factory, gateway, order_repo, fake_stripe):
    service = CheckoutService(uow_factory, gateway)
    first = await service.checkout(_checkout_request())

    again = await service.start_payment(first.order_number)

    assert again.payment_intent_id == first.payment_intent_id
    assert [c[0] for c in fake_stripe.calls] == ["payment_intents.create", "payment_intents.retrieve"]


@pytest.mark.asyncio
async def test_start_payment_opens_new_attempt_for_failed_order(uow_factory, gateway, order_repo):
    order_repo.orders[1001] = make_order(payment_status=PaymentStatus.FAILED, failure_reason="Payment failed")
    service = CheckoutService(uow_factory, gateway)

    result = await service.start_payment("ORD-1001")

    stored = order_repo.orders[1001]
    assert stored.payment_status == PaymentStatus.PENDING
    assert stored.payment_intent_id == result.payment_intent_id != "pi_1"
    assert stored.payment_attempt == 2
    assert stored.failure_reason is None


@pytest.mark.asyncio
async def test_start_payment_rejects_paid_order(uow_factory, gateway, order_repo):
    order_repo.orders[1001] = make_order(payment_status=PaymentStatus.PAID)
    with pytest.raises(OrderAlreadyPaidException):
        await CheckoutService(uow_factory, gateway).start_payment("ORD-1001")


@pytest.mark.asyncio
async def test_start_payment_unknown_order(uow_factory, gateway):
    with pytest.raises(OrderNotFoundException):
        await CheckoutService(uow_factory, gateway).start_payment("ORD-404")


@pytest.mark.asyncio
async def test_open_new_attempt_reopens_failed_order(order_repo):
    order = make_order(payment_status=PaymentStatus.FAILED, failure_reason="Payment failed")
    order_repo.orders[1001] = order

    reopened = await OrderDomainService(order_repo).open_new_attempt(order, "pi_2")

    assert reopened.payment_status == PaymentStatus.PENDING
    assert reopened.payment_attempt == 2
    assert order_repo.orders[1001].payment_intent_id == "pi_2"


@pytest.mark.asyncio
async def test_open_new_attempt_conflict(order_repo):
    order = make_order(payment_status=PaymentStatus.FAILED)
    order_repo.orders[1001] = order
    order_repo.fail_next_cas = True

    with pytest.raises(PaymentAttemptConflictException):
        await OrderDomainService(order_repo).open_new_attempt(order, "pi_2")
    assert order_repo.orders[1001].payment_status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_open_new_attempt_requires_failed_order(order_repo):
    order = make_order(payment_status=PaymentStatus.PENDING)
    order_repo.orders[1001] = order

    with pytest.raises(DomainValidationException):
        await OrderDomainService(order_repo).open_new_attempt(order, "pi_2")
    assert order_repo.cas_calls == 0
