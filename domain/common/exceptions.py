"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, *, order_id: Optional[int] = None, order_number: Optional[str] = None):
        details = {}
        if order_id is not None:
            details["order_id"] = order_id
        if order_number is not None:
            details["order_number"] = order_number
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details=details or None,
        )


class OrderAlreadyPaidException(BusinessException):
    def __init__(self, order_number: str, status: str):
        super().__init__(
            code=BusinessCode.ORDER_ALREADY_PAID,
            message=f"Order {order_number} is already {status}",
            error_type="OrderAlreadyPaid",
            details={"order_number": order_number, "payment_status": status},
        )


class OrderPaymentMissingException(BusinessException):
    """订单没有关联的支付意图（无法退款）"""

    def __init__(self, order_number: str):
        super().__init__(
            code=BusinessCode.ORDER_PAYMENT_MISSING,
            message="No payment information found for this order",
            error_type="OrderPaymentMissing",
            details={"order_number": order_number},
        )


class OrderNotRefundableException(BusinessException):
    def __init__(self, order_number: str, status: str, *, requested: Optional[Decimal] = None, available: Optional[Decimal] = None):
        details: dict = {"order_number": order_number, "payment_status": status}
        if requested is not None:
            details["requested"] = str(requested)
        if available is not None:
            details["available"] = str(available)
        super().__init__(
            code=BusinessCode.ORDER_NOT_PAYABLE,
            message="Refund exceeds the refundable balance" if requested is not None else f"Order in status {status} cannot be refunded",
            error_type="OrderNotRefundable",
            details=details,
            field="amount" if requested is not None else None,
        )


class PaymentAttemptConflictException(BusinessException):
    """并发打开新的支付尝试时，订单状态已被其他请求修改"""

    def __init__(self, order_number: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_PAYABLE,
            message="Order payment state changed concurrently, please retry",
            error_type="PaymentAttemptConflict",
            details={"order_number": order_number},
        )
