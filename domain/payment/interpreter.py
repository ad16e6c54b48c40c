"""
Interpret verified processor webhook envelopes into domain events.

Never raises on unexpected input: unknown event types become `UnknownEvent`
and missing or garbled correlation metadata yields an event with
`order_ref=None`, which the reconciler reports instead of guessing an order.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional

from domain.payment.events import (
    DomainEvent,
    GENERIC_FAILURE_REASON,
    OrderRef,
    PaymentFailed,
    PaymentSucceeded,
    RefundIssued,
    UnknownEvent,
)
from domain.payment.money import from_minor_units
from shared.codes.payment_codes import (
    STRIPE_CHARGE_REFUNDED,
    STRIPE_PAYMENT_FAILED,
    STRIPE_PAYMENT_SUCCEEDED,
)


def _event_object(envelope: Mapping[str, Any]) -> Mapping[str, Any]:
    data = envelope.get("data")
    if not isinstance(data, Mapping):
        return {}
    obj = data.get("object")
    return obj if isinstance(obj, Mapping) else {}


def extract_order_ref(metadata: Any) -> Optional[OrderRef]:
    """Recover order id/number attached to the intent at creation time."""
    if not isinstance(metadata, Mapping):
        return None
    raw_id = metadata.get("orderId")
    if raw_id is None or isinstance(raw_id, bool):
        return None
    try:
        order_id = int(str(raw_id).strip())
    except (TypeError, ValueError):
        return None
    if order_id <= 0:
        return None
    number = metadata.get("orderNumber")
    order_number = str(number) if isinstance(number, str) and number.strip() else None
    return OrderRef(order_id=order_id, order_number=order_number)


def _amount(obj: Mapping[str, Any], key: str, currency: Optional[str]) -> Optional[Decimal]:
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return from_minor_units(value, currency or "")


def _first_amount(obj: Mapping[str, Any], keys: tuple[str, ...], currency: Optional[str]) -> Optional[Decimal]:
    for key in keys:
        amount = _amount(obj, key, currency)
        if amount is not None:
            return amount
    return None


def _failure_reason(obj: Mapping[str, Any]) -> str:
    error = obj.get("last_payment_error")
    if isinstance(error, Mapping):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message
    return GENERIC_FAILURE_REASON


def interpret(envelope: Mapping[str, Any], *, verified: bool = True) -> DomainEvent:
    """Map a processor event envelope to exactly one DomainEvent variant."""
    if not isinstance(envelope, Mapping):
        envelope = {}
    event_type = str(envelope.get("type") or "")
    event_id = envelope.get("id")
    event_id = str(event_id) if event_id is not None else None
    obj = _event_object(envelope)
    currency = obj.get("currency") if isinstance(obj.get("currency"), str) else None
    order_ref = extract_order_ref(obj.get("metadata"))

    if event_type == STRIPE_PAYMENT_SUCCEEDED:
        return PaymentSucceeded(
            event_id=event_id,
            event_type=event_type,
            payment_intent_id=_str_or_none(obj.get("id")),
            order_ref=order_ref,
            amount=_first_amount(obj, ("amount_received", "amount"), currency),
            currency=currency,
            verified=verified,
        )
    if event_type == STRIPE_PAYMENT_FAILED:
        return PaymentFailed(
            event_id=event_id,
            event_type=event_type,
            payment_intent_id=_str_or_none(obj.get("id")),
            order_ref=order_ref,
            amount=_amount(obj, "amount", currency),
            currency=currency,
            verified=verified,
            reason=_failure_reason(obj),
        )
    if event_type == STRIPE_CHARGE_REFUNDED:
        # data.object is the Charge; it points back at its payment intent
        return RefundIssued(
            event_id=event_id,
            event_type=event_type,
            payment_intent_id=_str_or_none(obj.get("payment_intent")),
            order_ref=order_ref,
            amount=_amount(obj, "amount_refunded", currency),
            currency=currency,
            verified=verified,
        )
    return UnknownEvent(
        event_id=event_id,
        event_type=event_type,
        payment_intent_id=_str_or_none(obj.get("id")),
        order_ref=order_ref,
        currency=currency,
        verified=verified,
    )


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, Mapping):
        # expanded object
        value = value.get("id")
        return str(value) if value else None
    return str(value) or None
