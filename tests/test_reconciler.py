from decimal import Decimal

import pytest

from conftest import InMemoryOrderRepository, make_order
from domain.order.entity import PaymentStatus
from domain.order.events import OrderPaid, OrderPaymentFailed, OrderRefunded
from domain.payment.events import (
    GENERIC_FAILURE_REASON,
    OrderRef,
    PaymentFailed,
    PaymentSucceeded,
    RefundIssued,
    UnknownEvent,
)
from domain.payment.reconciler import OrderReconciler, ReconcileResult, plan_transition


REF = OrderRef(order_id=1001, order_number="ORD-1001")


def succeeded(**kw):
    data = dict(event_id="evt_s", event_type="payment_intent.succeeded", payment_intent_id="pi_1", order_ref=REF, amount=Decimal("129.99"))
    data.update(kw)
    return PaymentSucceeded(**data)


def failed(**kw):
    data = dict(event_id="evt_f", event_type="payment_intent.payment_failed", payment_intent_id="pi_1", order_ref=REF)
    data.update(kw)
    return PaymentFailed(**data)


def refunded(amount, **kw):
    data = dict(event_id="evt_r", event_type="charge.refunded", payment_intent_id="pi_1", order_ref=REF, amount=amount)
    data.update(kw)
    return RefundIssued(**data)


@pytest.mark.asyncio
async def test_success_marks_pending_order_paid():
    repo = InMemoryOrderRepository([make_order()])
    reconciler = OrderReconciler(repo)

    outcome = await reconciler.apply(succeeded())

    assert outcome.result == ReconcileResult.APPLIED
    assert outcome.previous_status == PaymentStatus.PENDING
    assert outcome.new_status == PaymentStatus.PAID
    assert repo.orders[1001].payment_status == PaymentStatus.PAID
    assert repo.orders[1001].paid_amount == Decimal("129.99")
    events = reconciler.clear_events()
    assert len(events) == 1 and isinstance(events[0], OrderPaid)


@pytest.mark.asyncio
async def test_redelivered_success_is_duplicate_without_side_effects():
    repo = InMemoryOrderRepository([make_order()])
    reconciler = OrderReconciler(repo)

    await reconciler.apply(succeeded())
    reconciler.clear_events()
    again = await reconciler.apply(succeeded())

    assert again.result == ReconcileResult.DUPLICATE
    assert repo.orders[1001].payment_status == PaymentStatus.PAID
    assert reconciler.clear_events() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status", [PaymentStatus.PAID, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED]
)
async def test_late_failure_never_downgrades_settled_order(status):
    repo = InMemoryOrderRepository([make_order(payment_status=status, paid_amount=Decimal("129.99"))])
    reconciler = OrderReconciler(repo)

    outcome = await reconciler.apply(failed())

    assert outcome.result == ReconcileResult.DUPLICATE
    assert repo.orders[1001].payment_status == status
    assert repo.orders[1001].failure_reason is None
    assert repo.cas_calls == 0
    assert reconciler.clear_events() == []


@pytest.mark.asyncio
async def test_failure_records_generic_reason():
    repo = InMemoryOrderRepository([make_order()])
    reconciler = OrderReconciler(repo)

    outcome = await reconciler.apply(failed())

    assert outcome.result == ReconcileResult.APPLIED
    assert repo.orders[1001].payment_status == PaymentStatus.FAILED
    assert repo.orders[1001].failure_reason == GENERIC_FAILURE_REASON
    assert isinstance(reconciler.clear_events()[0], OrderPaymentFailed)


@pytest.mark.asyncio
async def test_partial_refund():
    repo = InMemoryOrderRepository([make_order(payment_status=PaymentStatus.PAID, paid_amount=Decimal("129.99"))])
    reconciler = OrderReconciler(repo)

    outcome = await reconciler.apply(refunded(Decimal("50.00")))

    assert outcome.result == ReconcileResult.APPLIED
    assert outcome.new_status == PaymentStatus.PARTIALLY_REFUNDED
    assert repo.orders[1001].refunded_amount == Decimal("50.00")
    assert repo.orders[1001].total == Decimal("129.99")
    notification = reconciler.clear_events()[0]
    assert isinstance(notification, OrderRefunded) and notification.full is False


@pytest.mark.asyncio
async def test_full_refund():
    repo = InMemoryOrderRepository([make_order(payment_status=PaymentStatus.PAID)])
    reconciler = OrderReconciler(repo)

    outcome = await reconciler.apply(refunded(Decimal("129.99")))

    assert outcome.new_status == PaymentStatus.REFUNDED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [PaymentStatus.PENDING, PaymentStatus.FAILED, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED],
)
async def test_refund_requires_paid_order(status):
    # partially_refunded is terminal: a later cumulative refund is not applied
    repo = InMemoryOrderRepository([make_order(payment_status=status, refunded_amount=Decimal("40.00"))])
    reconciler = OrderReconciler(repo)

    outcome = await reconciler.apply(refunded(Decimal("10.00")))

    assert outcome.result == ReconcileResult.INVALID_TRANSITION
    assert repo.orders[1001].payment_status == status
    assert repo.orders[1001].refunded_amount == Decimal("40.00")
    assert repo.cas_calls == 0
    assert reconciler.clear_events() == []


@pytest.mark.asyncio
async def test_success_on_failed_order_is_invalid_transition():
    repo = InMemoryOrderRepository([make_order(payment_status=PaymentStatus.FAILED)])
    outcome = await OrderReconciler(repo).apply(succeeded())
    assert outcome.result == ReconcileResult.INVALID_TRANSITION
    assert repo.orders[1001].payment_status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_event_without_order_ref_is_unresolvable():
    repo = InMemoryOrderRepository([make_order()])
    outcome = await OrderReconciler(repo).apply(succeeded(order_ref=None))
    assert outcome.result == ReconcileResult.UNRESOLVABLE
    assert repo.cas_calls == 0


@pytest.mark.asyncio
async def test_unknown_order_id():
    repo = InMemoryOrderRepository([make_order()])
    outcome = await OrderReconciler(repo).apply(succeeded(order_ref=OrderRef(order_id=999)))
    assert outcome.result == ReconcileResult.ORDER_NOT_FOUND


@pytest.mark.asyncio
async def test_mismatched_order_number_is_unresolvable():
    repo = InMemoryOrderRepository([make_order()])
    outcome = await OrderReconciler(repo).apply(succeeded(order_ref=OrderRef(order_id=1001, order_number="ORD-7")))
    assert outcome.result == ReconcileResult.UNRESOLVABLE
    assert repo.orders[1001].payment_status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_event_for_superseded_intent_is_stale():
    repo = InMemoryOrderRepository([make_order(payment_intent_id="pi_2", payment_attempt=2)])
    outcome = await OrderReconciler(repo).apply(succeeded(payment_intent_id="pi_1"))
    assert outcome.result == ReconcileResult.STALE
    assert repo.orders[1001].payment_status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_lost_compare_and_swap_is_duplicate():
    repo = InMemoryOrderRepository([make_order()])
    repo.fail_next_cas = True
    reconciler = OrderReconciler(repo)

    outcome = await reconciler.apply(succeeded())

    assert outcome.result == ReconcileResult.DUPLICATE
    assert reconciler.clear_events() == []


@pytest.mark.asyncio
async def test_unknown_event_is_ignored():
    repo = InMemoryOrderRepository([make_order()])
    event = UnknownEvent(event_id="evt_u", event_type="customer.created", payment_intent_id=None, order_ref=REF)
    outcome = await OrderReconciler(repo).apply(event)
    assert outcome.result == ReconcileResult.IGNORED
    assert repo.cas_calls == 0


def test_plan_refund_without_amount_is_full():
    order = make_order(payment_status=PaymentStatus.PAID)
    plan = plan_transition(order, refunded(None))
    assert plan.target == PaymentStatus.REFUNDED
    assert plan.details.refunded_amount == Decimal("129.99")
