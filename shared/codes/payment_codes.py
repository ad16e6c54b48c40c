"""
Payment specific codes and processor event type names.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    DECLINED = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004
    NOT_CONFIGURED = 60005
    REFUND_REJECTED = 60006


# Stripe webhook event types the reconciler understands
STRIPE_PAYMENT_SUCCEEDED = "payment_intent.succeeded"
STRIPE_PAYMENT_FAILED = "payment_intent.payment_failed"
STRIPE_CHARGE_REFUNDED = "charge.refunded"

STRIPE_SIGNATURE_HEADER = "Stripe-Signature"

# Currencies without a minor unit (amount is already in the smallest unit)
ZERO_DECIMAL_CURRENCIES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
})
