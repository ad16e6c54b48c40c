"""
Payment domain events.

Inbound processor notifications are normalized into a closed set of dataclass
variants (`DomainEvent`) at the interpreter boundary; everything downstream
dispatches on the variant type instead of raw processor strings.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Union


class EventKind(str, Enum):
    PAYMENT_SUCCEEDED = "PaymentSucceeded"
    PAYMENT_FAILED = "PaymentFailed"
    REFUND_ISSUED = "RefundIssued"
    UNKNOWN = "Unknown"


GENERIC_FAILURE_REASON = "Payment failed"


@dataclass(frozen=True)
class OrderRef:
    """Order correlation recovered from payment-intent metadata."""
    order_id: int
    order_number: Optional[str] = None


@dataclass(frozen=True)
class PaymentEvent:
    event_id: Optional[str]
    event_type: str
    payment_intent_id: Optional[str]
    order_ref: Optional[OrderRef]
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    verified: bool = True
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    kind = EventKind.UNKNOWN

    @property
    def resolvable(self) -> bool:
        return self.order_ref is not None


@dataclass(frozen=True)
class PaymentSucceeded(PaymentEvent):
    kind = EventKind.PAYMENT_SUCCEEDED


@dataclass(frozen=True)
class PaymentFailed(PaymentEvent):
    reason: str = GENERIC_FAILURE_REASON

    kind = EventKind.PAYMENT_FAILED


@dataclass(frozen=True)
class RefundIssued(PaymentEvent):
    # Cumulative amount refunded on the payment so far
    kind = EventKind.REFUND_ISSUED


@dataclass(frozen=True)
class UnknownEvent(PaymentEvent):
    kind = EventKind.UNKNOWN


DomainEvent = Union[PaymentSucceeded, PaymentFailed, RefundIssued, UnknownEvent]
