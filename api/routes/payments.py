"""
Payments API routes: processor webhook and operator refunds.

Keep this thin: no SDK details here.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_payment_service
from application.dtos.payments import RefundRequest
from application.services.payment_service import PaymentService
from core.response import success_response
from shared.codes.payment_codes import STRIPE_SIGNATURE_HEADER


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/webhook", summary="Processor webhook")
async def payments_webhook(request: Request, service: PaymentService = Depends(get_payment_service)):
    """
    接收支付处理方的 webhook

    签名失败返回 400，配置缺失返回 503；其余情况（包括无法关联订单、
    过期或非法转换）一律 200 确认，避免处理方无意义的重投。
    """
    raw_body = await request.body()
    ack = await service.handle_webhook(raw_body, request.headers.get(STRIPE_SIGNATURE_HEADER))
    return ack.model_dump(mode="json")


@router.post("/refunds", summary="Request refund")
async def request_refund(payload: RefundRequest, service: PaymentService = Depends(get_payment_service)):
    handle = await service.refund_order(payload)
    return success_response(data=handle.model_dump(mode="json"), message="Refund requested")
