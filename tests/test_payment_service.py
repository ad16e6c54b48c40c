import json
from decimal import Decimal

import pytest

from application.dtos.payments import RefundRequest
from application.services.payment_service import PaymentService
from conftest import WEBHOOK_SECRET, make_order, sign_payload
from domain.common.exceptions import (
    OrderNotFoundException,
    OrderNotRefundableException,
    OrderPaymentMissingException,
)
from domain.order.entity import PaymentStatus
from domain.order.events import OrderPaid
from infrastructure.external.payments.exceptions import PaymentSignatureError
from infrastructure.external.payments.webhook import StripeWebhookVerifier


class RecordingPublisher:
    def __init__(self):
        self.published = []

    async def publish(self, event):
        self.published.append(event)


def _body(event_type="payment_intent.succeeded", event_id="evt_1", **obj):
    data = {"id": "pi_1", "amount": 12999, "amount_received": 12999, "currency": "usd",
            "metadata": {"orderId": "1001", "orderNumber": "ORD-1001"}}
    data.update(obj)
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": data}})


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def service(uow_factory, gateway, publisher):
    return PaymentService(uow_factory, gateway, StripeWebhookVerifier(WEBHOOK_SECRET), publisher)


@pytest.mark.asyncio
async def test_signed_success_webhook_marks_order_paid(service, order_repo, publisher):
    order_repo.orders[1001] = make_order()
    body = _body()

    ack = await service.handle_webhook(body.encode(), sign_payload(body))

    assert ack.received is True
    assert ack.outcome["result"] == "applied"
    assert order_repo.orders[1001].payment_status == PaymentStatus.PAID
    assert len(publisher.published) == 1
    assert isinstance(publisher.published[0], OrderPaid)


@pytest.mark.asyncio
async def test_duplicate_delivery_publishes_once(service, order_repo, publisher):
    order_repo.orders[1001] = make_order()
    body = _body()

    await service.handle_webhook(body.encode(), sign_payload(body))
    ack = await service.handle_webhook(body.encode(), sign_payload(body))

    assert ack.outcome["result"] == "duplicate"
    assert len(publisher.published) == 1


@pytest.mark.asyncio
async def test_bad_signature_never_touches_orders(service, order_repo):
    order_repo.orders[1001] = make_order()
    body = _body()

    with pytest.raises(PaymentSignatureError):
        await service.handle_webhook(body.encode(), sign_payload(body, secret="whsec_wrong"))

    assert order_repo.orders[1001].payment_status == PaymentStatus.PENDING
    assert order_repo.cas_calls == 0


@pytest.mark.asyncio
async def test_unresolvable_event_is_acknowledged(service, order_repo):
    order_repo.orders[1001] = make_order()
    body = _body(metadata={})

    ack = await service.handle_webhook(body.encode(), sign_payload(body))

    assert ack.outcome["result"] == "unresolvable"
    assert order_repo.orders[1001].payment_status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_unverified_mode_still_reconciles(uow_factory, gateway, order_repo):
    order_repo.orders[1001] = make_order()
    service = PaymentService(uow_factory, gateway, StripeWebhookVerifier(None))

    ack = await service.handle_webhook(_body().encode(), None)

    assert ack.outcome["result"] == "applied"
    assert ack.outcome["verified"] is False


@pytest.mark.asyncio
async def test_refund_requires_known_order(service):
    with pytest.raises(OrderNotFoundException):
        await service.refund_order(RefundRequest(order_number="ORD-404"))


@pytest.mark.asyncio
async def test_refund_requires_payment_intent(service, order_repo):
    order_repo.orders[1001] = make_order(payment_intent_id=None, payment_status=PaymentStatus.PAID)
    with pytest.raises(OrderPaymentMissingException) as exc_info:
        await service.refund_order(RefundRequest(order_number="ORD-1001"))
    assert exc_info.value.message == "No payment information found for this order"


@pytest.mark.asyncio
async def test_refund_acknowledged_without_status_change(service, order_repo, fake_stripe):
    order_repo.orders[1001] = make_order(payment_status=PaymentStatus.PAID)

    handle = await service.refund_order(RefundRequest(order_number="ORD-1001", amount=Decimal("50.00")))

    assert handle.refund_id == "re_fake_1"
    assert handle.payment_intent_id == "pi_1"
    assert fake_stripe.calls[0][1] == {"payment_intent": "pi_1", "amount": 5000}
    # status changes only when the refund webhook arrives
    assert order_repo.orders[1001].payment_status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_refund_passes_through_without_local_guard(service, order_repo, fake_stripe):
    order_repo.orders[1001] = make_order(payment_status=PaymentStatus.PENDING)
    await service.refund_order(RefundRequest(order_number="ORD-1001", amount=Decimal("500.00")))
    assert len(fake_stripe.calls) == 1


@pytest.mark.asyncio
async def test_local_refund_guard(uow_factory, gateway, order_repo, fake_stripe):
    service = PaymentService(uow_factory, gateway, StripeWebhookVerifier(WEBHOOK_SECRET), validate_refunds_locally=True)
    order_repo.orders[1001] = make_order(payment_status=PaymentStatus.PAID)

    with pytest.raises(OrderNotRefundableException):
        await service.refund_order(RefundRequest(order_number="ORD-1001", amount=Decimal("200.00")))
    assert fake_stripe.calls == []

    await service.refund_order(RefundRequest(order_number="ORD-1001", amount=Decimal("129.99")))
    assert len(fake_stripe.calls) == 1


@pytest.mark.asyncio
async def test_get_order_view(service, order_repo):
    order_repo.orders[1001] = make_order(payment_status=PaymentStatus.FAILED, failure_reason="Payment failed")
    view = await service.get_order("ORD-1001")
    assert view.payment_status == "failed"
    assert view.failure_reason == "Payment failed"
    assert view.total == Decimal("129.99")
