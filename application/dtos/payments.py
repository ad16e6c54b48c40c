"""
Checkout and payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.types import condecimal, conint


class AddressDTO(BaseModel):
    name: str = Field(min_length=1)
    line1: str = Field(min_length=1)
    line2: Optional[str] = None
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=2, max_length=2)

    @field_validator("country")
    @classmethod
    def _upper_country(cls, v: str) -> str:
        return v.upper()


class CartItemDTO(BaseModel):
    product_id: int
    name: str
    quantity: conint(gt=0)  # type: ignore[valid-type]
    price: condecimal(ge=0, decimal_places=2)  # type: ignore[valid-type]


class CheckoutRequest(BaseModel):
    items: list[CartItemDTO] = Field(min_length=1)
    shipping_address: AddressDTO
    billing_address: Optional[AddressDTO] = None
    email: EmailStr


class CheckoutResult(BaseModel):
    client_secret: Optional[str] = None
    payment_intent_id: str
    order_id: int
    order_number: str
    amount: Decimal
    currency: str


class IntentRequest(BaseModel):
    """Gateway-level request for a payment intent tied to one order."""
    order_id: int
    order_number: str
    amount: condecimal(ge=0)  # type: ignore[valid-type]
    currency: str = "usd"
    customer_email: Optional[str] = None
    shipping_address: Optional[AddressDTO] = None
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _lower_and_validate_currency(cls, v: str) -> str:
        u = (v or "").lower()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        return u


class IntentHandle(BaseModel):
    intent_id: str
    status: str
    client_secret: Optional[str] = None
    amount_minor: Optional[int] = None
    currency: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class RefundRequest(BaseModel):
    order_number: str
    amount: Optional[condecimal(gt=0, decimal_places=2)] = None  # type: ignore[valid-type]
    reason: Optional[str] = None


class RefundHandle(BaseModel):
    refund_id: str
    status: str
    payment_intent_id: str
    amount_minor: Optional[int] = None
    amount: Optional[Decimal] = None


class OrderPaymentView(BaseModel):
    order_id: int
    order_number: str
    payment_status: str
    total: Decimal
    currency: str
    paid_amount: Optional[Decimal] = None
    refunded_amount: Decimal
    failure_reason: Optional[str] = None
    payment_intent_id: Optional[str] = None
    payment_attempt: int


class VerifiedWebhook(BaseModel):
    """Parsed webhook envelope plus whether its signature was checked."""
    payload: dict[str, Any]
    verified: bool
    signature: Optional[str] = None

    @property
    def event_id(self) -> Optional[str]:
        value = self.payload.get("id")
        return str(value) if value is not None else None

    @property
    def event_type(self) -> str:
        return str(self.payload.get("type") or "")


class WebhookAck(BaseModel):
    received: bool = True
    outcome: dict[str, Any]
