"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import hashlib
import hmac
import os
import tempfile
import time
from copy import deepcopy
from dataclasses import replace
from decimal import Decimal
from types import SimpleNamespace
from typing import Optional

_TMP_DIR = tempfile.mkdtemp(prefix="storefront-payments-")

os.environ.setdefault("DATABASE__URL", f"sqlite+aiosqlite:///{_TMP_DIR}/test.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("STRIPE__SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE__WEBHOOK_SECRET", "whsec_test_secret")

import pytest  # noqa: E402

from domain.common.unit_of_work import AbstractUnitOfWork  # noqa: E402
from domain.order.entity import (  # noqa: E402
    Address,
    Order,
    OrderItem,
    PaymentStatus,
    PaymentStatusDetails,
    can_transition,
)
from domain.common.exceptions import DomainValidationException  # noqa: E402
from domain.order.repository import OrderRepository  # noqa: E402


WEBHOOK_SECRET = os.environ["STRIPE__WEBHOOK_SECRET"]


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value for the exact payload string."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def make_order(**overrides) -> Order:
    address = Address(
        name="Jane Rider",
        line1="1 Trail Rd",
        city="Moab",
        state="UT",
        postal_code="84532",
        country="US",
    )
    data = dict(
        id=1001,
        order_number="ORD-1001",
        customer_email="jane@example.com",
        shipping_address=address,
        billing_address=address,
        items=[OrderItem(product_id=7, name="LED light bar", quantity=1, price=Decimal("105.36"))],
        subtotal=Decimal("105.36"),
        tax=Decimal("8.43"),
        shipping_cost=Decimal("15.00"),
        total=Decimal("129.99"),
        payment_status=PaymentStatus.PENDING,
        payment_intent_id="pi_1",
    )
    data.update(overrides)
    return Order(**data)


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, orders=None):
        self.orders: dict[int, Order] = {}
        self.next_id = 1000
        for order in orders or []:
            self.orders[order.id] = order
        self.cas_calls = 0
        # when set, the next CAS reports a conflict (another writer won)
        self.fail_next_cas = False

    async def create(self, order: Order) -> Order:
        self.next_id += 1
        stored = replace(deepcopy(order), id=self.next_id, order_number=f"ORD-{self.next_id}")
        self.orders[stored.id] = stored
        return deepcopy(stored)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        order = self.orders.get(order_id)
        return deepcopy(order) if order else None

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        for order in self.orders.values():
            if order.order_number == order_number:
                return deepcopy(order)
        return None

    async def attach_payment_intent(self, order_id, payment_intent_id, *, expected_intent_id=None) -> bool:
        order = self.orders.get(order_id)
        if order is None or order.payment_status != PaymentStatus.PENDING:
            return False
        if order.payment_intent_id != expected_intent_id:
            return False
        order.payment_intent_id = payment_intent_id
        return True

    async def update_payment_status(
        self,
        order_id: int,
        expected_status: PaymentStatus,
        new_status: PaymentStatus,
        details: Optional[PaymentStatusDetails] = None,
    ) -> bool:
        if not can_transition(expected_status, new_status):
            raise DomainValidationException(
                f"Payment status transition not permitted: {expected_status.value} -> {new_status.value}",
                field="payment_status",
            )
        self.cas_calls += 1
        if self.fail_next_cas:
            self.fail_next_cas = False
            return False
        order = self.orders.get(order_id)
        if order is None or order.payment_status != expected_status:
            return False
        order.payment_status = new_status
        if details is not None:
            for name in ("payment_intent_id", "paid_amount", "refunded_amount", "failure_reason", "payment_attempt"):
                value = getattr(details, name)
                if value is not None:
                    setattr(order, name, value)
        return True

    async def reopen_for_new_attempt(self, order_id, payment_intent_id, payment_attempt) -> bool:
        self.cas_calls += 1
        if self.fail_next_cas:
            self.fail_next_cas = False
            return False
        order = self.orders.get(order_id)
        if order is None or order.payment_status != PaymentStatus.FAILED:
            return False
        order.payment_status = PaymentStatus.PENDING
        order.payment_intent_id = payment_intent_id
        order.payment_attempt = payment_attempt
        order.failure_reason = None
        return True


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, repository: InMemoryOrderRepository, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self.order_repository = repository
        self.commits = 0

    async def commit(self) -> None:
        self.commits += 1
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False


class _FakeIntents:
    def __init__(self, owner):
        self.owner = owner

    def create(self, params=None, options=None):
        self.owner.calls.append(("payment_intents.create", params, options))
        if self.owner.error is not None:
            raise self.owner.error
        self.owner.counter += 1
        intent_id = f"pi_fake_{self.owner.counter}"
        intent = {
            "id": intent_id,
            "object": "payment_intent",
            "status": "requires_payment_method",
            "client_secret": f"{intent_id}_secret_x",
            "amount": params["amount"],
            "currency": params["currency"],
            "metadata": dict(params.get("metadata") or {}),
        }
        self.owner.intents[intent_id] = intent
        return intent

    def retrieve(self, intent_id, params=None, options=None):
        self.owner.calls.append(("payment_intents.retrieve", intent_id, options))
        if self.owner.error is not None:
            raise self.owner.error
        return self.owner.intents[intent_id]


class _FakeRefunds:
    def __init__(self, owner):
        self.owner = owner

    def create(self, params=None, options=None):
        self.owner.calls.append(("refunds.create", params, options))
        if self.owner.error is not None:
            raise self.owner.error
        return SimpleNamespace(
            id="re_fake_1",
            status="pending",
            payment_intent=params["payment_intent"],
            amount=params.get("amount", 12999),
        )


class FakeStripeClient:
    """Stand-in for stripe.StripeClient exposing the services the gateway uses."""

    def __init__(self):
        self.calls: list = []
        self.intents: dict = {}
        self.counter = 0
        self.error: Optional[Exception] = None
        self.payment_intents = _FakeIntents(self)
        self.refunds = _FakeRefunds(self)


@pytest.fixture
def order_repo():
    return InMemoryOrderRepository()


@pytest.fixture
def uow_factory(order_repo):
    def _factory(*, readonly: bool = False):
        return InMemoryUnitOfWork(order_repo, readonly=readonly)
    return _factory


@pytest.fixture
def fake_stripe():
    return FakeStripeClient()


@pytest.fixture
def gateway(fake_stripe):
    from infrastructure.external.payments.stripe_client import StripeGateway
    return StripeGateway(fake_stripe)
