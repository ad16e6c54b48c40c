"""
Payment-related settings using pydantic-settings v2 with nested env keys.

This module is isolated so core.config.Settings stays free of processor
credentials.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    # Seconds; applied to every outbound processor call
    total: float = 10.0


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    # Accept unsigned webhooks in production when no secret is configured
    allow_unverified: bool = False


class RefundSettings(BaseModel):
    validate_locally: bool = False


class CheckoutSettings(BaseModel):
    tax_rate: Decimal = Decimal("0.08")
    free_shipping_threshold: Decimal = Decimal("200")
    flat_shipping: Decimal = Decimal("15")


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_version: Optional[str] = None


class PaymentSettings(BaseSettings):
    currency: str = Field(default="usd", validation_alias="PAYMENT__CURRENCY")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts, validation_alias="PAYMENT__TIMEOUTS")
    webhook: WebhookSettings = Field(default_factory=WebhookSettings, validation_alias="PAYMENT__WEBHOOK")
    refund: RefundSettings = Field(default_factory=RefundSettings, validation_alias="PAYMENT__REFUND")
    checkout: CheckoutSettings = Field(default_factory=CheckoutSettings, validation_alias="PAYMENT__CHECKOUT")

    stripe: StripeSettings = Field(default_factory=StripeSettings, validation_alias="STRIPE")

    model_config = SettingsConfigDict(
        env_file=".env",
        # 嵌套键（STRIPE__WEBHOOK_SECRET）按字段名小写匹配
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
