"""
Exceptions for the payment processor adapter mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


def _provider_details(provider: str, details: Optional[dict]) -> dict:
    full_details = {"provider": provider}
    if details:
        full_details.update(details)
    return full_details


class PaymentConfigurationError(BusinessException):
    """处理方凭据缺失或无效（运维问题，不是客户端问题）"""

    def __init__(self, message: str = "Payment processing is not configured", *, provider: str = "stripe", details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.NOT_CONFIGURED,
            message=message,
            error_type="PaymentConfigurationError",
            details=_provider_details(provider, details),
        )


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str = "Webhook signature verification failed", *, provider: str = "stripe", details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=_provider_details(provider, details),
        )


class PaymentDeclinedError(BusinessException):
    """卡被拒：处理方的消息原样返回给客户"""

    def __init__(self, message: str, *, provider: str = "stripe", decline_code: Optional[str] = None):
        super().__init__(
            code=PaymentCode.DECLINED,
            message=message,
            error_type="PaymentDeclined",
            details=_provider_details(provider, {"decline_code": decline_code} if decline_code else None),
        )


class PaymentProcessorError(BusinessException):
    def __init__(
        self,
        message: str = "Payment processor request failed",
        *,
        provider: str = "stripe",
        code: int = PaymentCode.PROVIDER_ERROR,
        provider_code: Optional[str] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            error_type="PaymentProcessorError",
            details=_provider_details(provider, {"provider_code": provider_code} if provider_code else None),
        )
