"""
Payment ports (application/ports) exposing replaceable protocols.

Application depends on these Protocols; infrastructure implements adapters.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    IntentHandle,
    IntentRequest,
    RefundHandle,
    VerifiedWebhook,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the external payment processor.

    Calls are side-effecting and not idempotent at this layer; callers guard
    retries (e.g. never create a second intent for an order that has one).
    """

    provider: str

    async def create_intent(self, req: IntentRequest) -> IntentHandle: ...

    async def retrieve_intent(self, intent_id: str) -> IntentHandle: ...

    async def create_refund(self, intent_id: str, amount: Optional[Decimal] = None, *, currency: str = "usd") -> RefundHandle: ...


@runtime_checkable
class WebhookVerifier(Protocol):
    def verify(self, payload: bytes | str, signature: Optional[str]) -> bool: ...

    def verify_and_parse(self, payload: bytes | str, signature: Optional[str]) -> VerifiedWebhook: ...


@runtime_checkable
class OrderEventPublisher(Protocol):
    async def publish(self, event: object) -> None: ...
