"""
Order checkout routes.
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_checkout_service, get_payment_service
from application.dtos.payments import CheckoutRequest
from application.services.checkout_service import CheckoutService
from application.services.payment_service import PaymentService
from core.response import success_response


router = APIRouter(tags=["Orders"])


@router.post("/checkout", summary="Place order and create payment intent")
async def checkout(payload: CheckoutRequest, service: CheckoutService = Depends(get_checkout_service)):
    result = await service.checkout(payload)
    return success_response(data=result.model_dump(mode="json"), message="Order created")


@router.post("/orders/{order_number}/payment-intent", summary="Get or renew the order's payment intent")
async def start_payment(order_number: str, service: CheckoutService = Depends(get_checkout_service)):
    result = await service.start_payment(order_number)
    return success_response(data=result.model_dump(mode="json"))


@router.get("/orders/{order_number}", summary="Order payment status")
async def get_order(order_number: str, service: PaymentService = Depends(get_payment_service)):
    view = await service.get_order(order_number)
    return success_response(data=view.model_dump(mode="json"))
