"""
Stripe webhook signature verification.

The signature covers the exact bytes received, so the body is only decoded
(UTF-8) and never re-serialized before verification.
"""
from __future__ import annotations

import json
from typing import Optional

import stripe

from application.dtos.payments import VerifiedWebhook
from core.logging_config import get_logger
from infrastructure.external.payments.exceptions import PaymentConfigurationError, PaymentSignatureError


logger = get_logger(__name__)


def _as_text(payload: bytes | str) -> Optional[str]:
    if isinstance(payload, str):
        return payload
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError:
        return None


class StripeWebhookVerifier:
    provider = "stripe"

    def __init__(self, secret: Optional[str], *, tolerance: int = 300):
        self._secret = secret
        self.tolerance = tolerance

    @property
    def enforcing(self) -> bool:
        return bool(self._secret)

    def verify(self, payload: bytes | str, signature: Optional[str]) -> bool:
        """True only when the header carries a valid signature for this exact payload."""
        if not self._secret or not signature:
            return False
        text = _as_text(payload)
        if text is None:
            return False
        try:
            return bool(stripe.WebhookSignature.verify_header(text, signature, self._secret, self.tolerance))
        except stripe.SignatureVerificationError as exc:
            logger.warning("payment_webhook_signature_invalid", provider=self.provider, error=str(exc))
            return False

    def verify_and_parse(self, payload: bytes | str, signature: Optional[str]) -> VerifiedWebhook:
        verified = False
        if self.enforcing:
            if not self.verify(payload, signature):
                raise PaymentSignatureError(provider=self.provider)
            verified = True

        text = _as_text(payload)
        try:
            data = json.loads(text) if text is not None else None
        except ValueError:
            data = None
        if not isinstance(data, dict):
            raise PaymentSignatureError("Malformed webhook payload", provider=self.provider)
        return VerifiedWebhook(payload=data, verified=verified, signature=signature)


class UnavailableWebhookVerifier:
    """Stands in when signing is required but no secret is configured; every delivery fails with 503."""

    provider = "stripe"
    enforcing = True

    def verify(self, payload: bytes | str, signature: Optional[str]) -> bool:
        return False

    def verify_and_parse(self, payload: bytes | str, signature: Optional[str]) -> VerifiedWebhook:
        logger.error("payment_webhook_secret_missing", provider=self.provider)
        raise PaymentConfigurationError("Webhook signing secret is not configured", provider=self.provider)
