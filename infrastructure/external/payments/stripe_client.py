"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

The SDK client (`stripe.StripeClient`) is built once at startup and injected;
every call runs in a worker thread via anyio so the event loop never blocks.
SDK network retries are disabled: a failed call surfaces to the caller.
"""
from __future__ import annotations

from decimal import Decimal
from functools import partial
from typing import Any, Optional

import anyio
import stripe

from application.dtos.payments import IntentHandle, IntentRequest, RefundHandle
from core.logging_config import get_logger
from domain.payment.money import from_minor_units, to_minor_units
from infrastructure.external.payments.exceptions import (
    PaymentConfigurationError,
    PaymentDeclinedError,
    PaymentProcessorError,
)
from shared.codes.payment_codes import PaymentCode


logger = get_logger(__name__)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _metadata(obj: Any) -> dict[str, str]:
    raw = _field(obj, "metadata") or {}
    if not isinstance(raw, dict):
        raw = {k: _field(raw, k) for k in getattr(raw, "keys", lambda: [])()}
    return {str(k): str(v) for k, v in raw.items() if v is not None}


def build_intent_params(req: IntentRequest) -> dict[str, Any]:
    """Stripe create params for one order (amount in minor units)."""
    metadata = {"orderId": str(req.order_id), "orderNumber": req.order_number}
    if req.customer_email:
        metadata["customerEmail"] = req.customer_email
    params: dict[str, Any] = {
        "amount": to_minor_units(req.amount, req.currency),
        "currency": req.currency,
        "metadata": metadata,
        "automatic_payment_methods": {"enabled": True},
        "description": f"Order #{req.order_number}",
    }
    if req.customer_email:
        params["receipt_email"] = req.customer_email
    if req.shipping_address is not None:
        addr = req.shipping_address
        params["shipping"] = {
            "name": addr.name,
            "address": {
                "line1": addr.line1,
                "line2": addr.line2 or "",
                "city": addr.city,
                "state": addr.state,
                "postal_code": addr.postal_code,
                "country": addr.country,
            },
        }
    return params


class StripeGateway:
    provider = "stripe"

    def __init__(self, client: Optional["stripe.StripeClient"]):
        # None means credentials are absent; every call fails loudly
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _require_client(self) -> "stripe.StripeClient":
        if self._client is None:
            logger.error("payment_gateway_not_configured", provider=self.provider)
            raise PaymentConfigurationError(provider=self.provider)
        return self._client

    async def _call(self, operation: str, fn, **log_fields):
        try:
            return await anyio.to_thread.run_sync(fn)
        except stripe.CardError as exc:
            message = exc.user_message or str(exc)
            logger.info("payment_declined", provider=self.provider, operation=operation, decline_code=exc.code, **log_fields)
            raise PaymentDeclinedError(message, provider=self.provider, decline_code=exc.code) from exc
        except stripe.AuthenticationError as exc:
            logger.error("payment_provider_auth_failed", provider=self.provider, operation=operation, error=str(exc))
            raise PaymentConfigurationError("Payment processor rejected the configured credentials", provider=self.provider) from exc
        except stripe.RateLimitError as exc:
            logger.warning("payment_provider_rate_limited", provider=self.provider, operation=operation, **log_fields)
            raise PaymentProcessorError(
                "Payment processor is busy, please retry later",
                provider=self.provider,
                code=PaymentCode.RATE_LIMITED,
                provider_code=exc.code,
            ) from exc
        except stripe.APIConnectionError as exc:
            logger.error("payment_provider_unreachable", provider=self.provider, operation=operation, error=str(exc), **log_fields)
            raise PaymentProcessorError(provider=self.provider, code=PaymentCode.TIMEOUT) from exc
        except stripe.InvalidRequestError as exc:
            logger.error("payment_provider_rejected", provider=self.provider, operation=operation, error=str(exc), **log_fields)
            code = PaymentCode.REFUND_REJECTED if operation == "create_refund" else PaymentCode.PROVIDER_ERROR
            raise PaymentProcessorError(provider=self.provider, code=code, provider_code=exc.code) from exc
        except stripe.StripeError as exc:
            logger.error("payment_provider_error", provider=self.provider, operation=operation, error=str(exc), **log_fields)
            raise PaymentProcessorError(provider=self.provider, provider_code=exc.code) from exc

    def _to_handle(self, pi: Any) -> IntentHandle:
        return IntentHandle(
            intent_id=str(_field(pi, "id")),
            status=str(_field(pi, "status") or ""),
            client_secret=_field(pi, "client_secret"),
            amount_minor=_field(pi, "amount"),
            currency=_field(pi, "currency"),
            metadata=_metadata(pi),
        )

    async def create_intent(self, req: IntentRequest) -> IntentHandle:
        client = self._require_client()
        params = build_intent_params(req)
        options: dict[str, Any] = {}
        if req.idempotency_key:
            options["idempotency_key"] = req.idempotency_key
        pi = await self._call(
            "create_intent",
            partial(client.payment_intents.create, params=params, options=options),
            order_id=req.order_id,
        )
        handle = self._to_handle(pi)
        logger.info(
            "payment_intent_created_remote",
            provider=self.provider,
            intent_id=handle.intent_id,
            amount_minor=params["amount"],
            currency=params["currency"],
        )
        return handle

    async def retrieve_intent(self, intent_id: str) -> IntentHandle:
        client = self._require_client()
        pi = await self._call(
            "retrieve_intent",
            partial(client.payment_intents.retrieve, intent_id),
            intent_id=intent_id,
        )
        return self._to_handle(pi)

    async def create_refund(self, intent_id: str, amount: Optional[Decimal] = None, *, currency: str = "usd") -> RefundHandle:
        """Request a refund; omitting amount refunds the whole remaining balance."""
        client = self._require_client()
        params: dict[str, Any] = {"payment_intent": intent_id}
        if amount is not None:
            params["amount"] = to_minor_units(amount, currency)
        refund = await self._call(
            "create_refund",
            partial(client.refunds.create, params=params),
            intent_id=intent_id,
        )
        amount_minor = _field(refund, "amount")
        return RefundHandle(
            refund_id=str(_field(refund, "id")),
            status=str(_field(refund, "status") or ""),
            payment_intent_id=str(_field(refund, "payment_intent") or intent_id),
            amount_minor=amount_minor,
            amount=from_minor_units(amount_minor, currency) if amount_minor is not None else None,
        )
