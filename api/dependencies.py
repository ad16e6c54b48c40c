"""
API依赖项 - 从 app.state 组装应用服务
"""
from fastapi import Request

from application.services.checkout_service import CheckoutService
from application.services.payment_service import PaymentService
from core.settings import payment_settings
from domain.order.service import PricingPolicy
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def pricing_policy() -> PricingPolicy:
    checkout = payment_settings.checkout
    return PricingPolicy(
        tax_rate=checkout.tax_rate,
        free_shipping_threshold=checkout.free_shipping_threshold,
        flat_shipping=checkout.flat_shipping,
        currency=payment_settings.currency.lower(),
    )


async def get_payment_service(request: Request) -> PaymentService:
    # 网关/验签器在 lifespan 中构建一次
    state = request.app.state
    return PaymentService(
        uow_factory=SQLAlchemyUnitOfWork,
        gateway=state.payment_gateway,
        verifier=state.webhook_verifier,
        publisher=state.order_event_publisher,
        validate_refunds_locally=payment_settings.refund.validate_locally,
    )


async def get_checkout_service(request: Request) -> CheckoutService:
    return CheckoutService(
        uow_factory=SQLAlchemyUnitOfWork,
        gateway=request.app.state.payment_gateway,
        policy=pricing_policy(),
    )
