"""
Factory for the payment processor adapters.

Build once at startup (see main.lifespan) and share through app.state.
"""
from __future__ import annotations

from typing import Optional

import stripe

from core.config import settings
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from .stripe_client import StripeGateway
from .webhook import StripeWebhookVerifier, UnavailableWebhookVerifier


logger = get_logger(__name__)


def build_stripe_client(cfg: Optional[PaymentSettings] = None) -> Optional[stripe.StripeClient]:
    cfg = cfg or payment_settings
    if not cfg.stripe.secret_key:
        logger.error("payment_secret_key_missing", provider="stripe")
        return None
    return stripe.StripeClient(
        cfg.stripe.secret_key,
        stripe_version=cfg.stripe.api_version,
        http_client=stripe.RequestsClient(timeout=cfg.timeouts.total),
        max_network_retries=0,
    )


def build_payment_gateway(cfg: Optional[PaymentSettings] = None) -> StripeGateway:
    return StripeGateway(build_stripe_client(cfg))


def build_webhook_verifier(
    cfg: Optional[PaymentSettings] = None, *, production: Optional[bool] = None
) -> StripeWebhookVerifier | UnavailableWebhookVerifier:
    """
    Without a signing secret deliveries are accepted unverified (flagged and
    logged), except in production where this needs an explicit opt-in.
    """
    cfg = cfg or payment_settings
    production = settings.is_production if production is None else production
    secret = cfg.stripe.webhook_secret
    if not secret:
        if production and not cfg.webhook.allow_unverified:
            logger.error("payment_webhook_secret_missing", provider="stripe", environment="production")
            return UnavailableWebhookVerifier()
        logger.warning("payment_webhook_unverified_mode", provider="stripe")
    return StripeWebhookVerifier(secret, tolerance=cfg.webhook.tolerance_seconds)


__all__ = [
    "StripeGateway",
    "StripeWebhookVerifier",
    "UnavailableWebhookVerifier",
    "build_payment_gateway",
    "build_stripe_client",
    "build_webhook_verifier",
]
