"""
订单仓储接口 - 定义订单数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Order, PaymentStatus, PaymentStatusDetails


class OrderRepository(ABC):
    """订单仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单并分配订单号"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int) -> Optional[Order]:
        """根据ID获取订单"""
        pass

    @abstractmethod
    async def get_by_number(self, order_number: str) -> Optional[Order]:
        """根据订单号获取订单"""
        pass

    @abstractmethod
    async def attach_payment_intent(
        self,
        order_id: int,
        payment_intent_id: str,
        *,
        expected_intent_id: Optional[str] = None,
    ) -> bool:
        """在订单仍为 pending 且意图ID未被替换时关联支付意图ID。"""
        pass

    @abstractmethod
    async def update_payment_status(
        self,
        order_id: int,
        expected_status: PaymentStatus,
        new_status: PaymentStatus,
        details: Optional[PaymentStatusDetails] = None,
    ) -> bool:
        """条件更新（compare-and-swap）

        仅当当前状态等于 expected_status 时写入 new_status 与 details。
        返回 False 表示冲突（并发或重复的转换）。
        """
        pass

    @abstractmethod
    async def reopen_for_new_attempt(
        self,
        order_id: int,
        payment_intent_id: str,
        payment_attempt: int,
    ) -> bool:
        """失败订单重新开启支付：failed -> pending（条件更新）

        换上新的支付意图与尝试序号，并清除失败原因。
        这是 ALLOWED_TRANSITIONS 之外唯一允许的回退路径。
        """
        pass
