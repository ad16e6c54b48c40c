"""
订单仓储实现 - 使用SQLAlchemy实现数据访问

支付状态写入一律为条件更新（WHERE payment_status = :expected），
并发的重复投递只会有一个成功。
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.order.entity import (
    Address,
    Order,
    OrderItem,
    PaymentStatus,
    PaymentStatusDetails,
    can_transition,
)
from domain.common.exceptions import DomainValidationException
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderItemModel, OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            order_number=model.order_number,
            customer_email=model.customer_email,
            shipping_address=Address.from_dict(model.shipping_address),
            billing_address=Address.from_dict(model.billing_address),
            items=[
                OrderItem(
                    product_id=item.product_id,
                    name=item.name,
                    quantity=item.quantity,
                    price=Decimal(item.price),
                )
                for item in model.items
            ],
            subtotal=Decimal(model.subtotal),
            tax=Decimal(model.tax),
            shipping_cost=Decimal(model.shipping_cost),
            total=Decimal(model.total),
            currency=model.currency,
            shipping_method=model.shipping_method,
            payment_status=PaymentStatus(model.payment_status),
            payment_intent_id=model.payment_intent_id,
            payment_attempt=model.payment_attempt,
            paid_amount=Decimal(model.paid_amount) if model.paid_amount is not None else None,
            refunded_amount=Decimal(model.refunded_amount or 0),
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        return OrderModel(
            id=entity.id,
            order_number=entity.order_number,
            customer_email=entity.customer_email,
            shipping_address=entity.shipping_address.to_dict(),
            billing_address=entity.billing_address.to_dict(),
            shipping_method=entity.shipping_method,
            subtotal=entity.subtotal,
            tax=entity.tax,
            shipping_cost=entity.shipping_cost,
            total=entity.total,
            currency=entity.currency,
            payment_status=entity.payment_status.value,
            payment_intent_id=entity.payment_intent_id,
            payment_attempt=entity.payment_attempt,
            paid_amount=entity.paid_amount,
            refunded_amount=entity.refunded_amount,
            failure_reason=entity.failure_reason,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            items=[
                OrderItemModel(
                    product_id=item.product_id,
                    name=item.name,
                    quantity=item.quantity,
                    price=item.price,
                )
                for item in entity.items
            ],
        )

    async def create(self, order: Order) -> Order:
        """创建订单，并在同一事务内分配订单号"""
        db_order = self._to_model(order)
        self.session.add(db_order)
        await self.session.flush()  # 获取生成的ID
        if not db_order.order_number:
            db_order.order_number = f"ORD-{db_order.id}"
            await self.session.flush()
        logger.debug("order_created", order_id=db_order.id, order_number=db_order.order_number)
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.id == order_id).execution_options(populate_existing=True))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.order_number == order_number).execution_options(populate_existing=True))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def attach_payment_intent(
        self,
        order_id: int,
        payment_intent_id: str,
        *,
        expected_intent_id: Optional[str] = None,
    ) -> bool:
        intent_guard = (
            OrderModel.payment_intent_id.is_(None)
            if expected_intent_id is None
            else OrderModel.payment_intent_id == expected_intent_id
        )
        stmt = (
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.payment_status == PaymentStatus.PENDING.value,
                intent_guard,
            )
            .values(payment_intent_id=payment_intent_id, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        attached = result.rowcount == 1
        if not attached:
            logger.info("order_intent_attach_skipped", order_id=order_id, payment_intent_id=payment_intent_id)
        return attached

    async def update_payment_status(
        self,
        order_id: int,
        expected_status: PaymentStatus,
        new_status: PaymentStatus,
        details: Optional[PaymentStatusDetails] = None,
    ) -> bool:
        if not can_transition(expected_status, new_status):
            raise DomainValidationException(
                f"Payment status transition not permitted: {expected_status.value} -> {new_status.value}",
                field="payment_status",
            )
        values: dict = {
            "payment_status": new_status.value,
            "updated_at": datetime.now(timezone.utc),
        }
        if details is not None:
            if details.payment_intent_id is not None:
                values["payment_intent_id"] = details.payment_intent_id
            if details.paid_amount is not None:
                values["paid_amount"] = details.paid_amount
            if details.refunded_amount is not None:
                values["refunded_amount"] = details.refunded_amount
            if details.failure_reason is not None:
                values["failure_reason"] = details.failure_reason
            if details.payment_attempt is not None:
                values["payment_attempt"] = details.payment_attempt
        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.payment_status == expected_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def reopen_for_new_attempt(
        self,
        order_id: int,
        payment_intent_id: str,
        payment_attempt: int,
    ) -> bool:
        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.payment_status == PaymentStatus.FAILED.value)
            .values(
                payment_status=PaymentStatus.PENDING.value,
                payment_intent_id=payment_intent_id,
                payment_attempt=payment_attempt,
                failure_reason=None,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
