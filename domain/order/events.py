"""
Order payment notifications.

Raised by the reconciler only when a payment status transition is actually
persisted, so downstream handlers (fulfillment, customer email) observe each
outcome at most once even when the processor redelivers a webhook.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
import uuid


@dataclass
class OrderPaymentEvent:
    order_id: int
    order_number: Optional[str]
    payment_intent_id: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderPaid(OrderPaymentEvent):
    amount: Optional[Decimal] = None


@dataclass
class OrderPaymentFailed(OrderPaymentEvent):
    reason: Optional[str] = None


@dataclass
class OrderRefunded(OrderPaymentEvent):
    refunded_amount: Optional[Decimal] = None
    full: bool = False
