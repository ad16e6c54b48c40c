"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    这是数据库表的映射，不包含业务逻辑
    支付状态转换规则都在 domain.payment.reconciler 中
    """
    __tablename__ = "orders"

    # 主键
    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(64), unique=True, index=True, nullable=True, comment="订单号 ORD-<id>")

    # 客户信息
    customer_email = Column(String(255), nullable=False, comment="客户邮箱")
    shipping_address = Column(JSON, nullable=False, comment="收货地址")
    billing_address = Column(JSON, nullable=False, comment="账单地址")
    shipping_method = Column(String(50), nullable=True, comment="配送方式")

    # 金额信息（使用 Numeric 存储精确金额）
    subtotal = Column(Numeric(precision=12, scale=2), nullable=False, comment="小计")
    tax = Column(Numeric(precision=12, scale=2), nullable=False, default=0, comment="税费")
    shipping_cost = Column(Numeric(precision=12, scale=2), nullable=False, default=0, comment="运费")
    total = Column(Numeric(precision=12, scale=2), nullable=False, comment="订单总额（不可变）")
    currency = Column(String(3), nullable=False, default="usd", comment="货币代码 ISO-4217")

    # 支付信息
    payment_status = Column(
        String(32),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/paid/failed/refunded/partially_refunded",
    )
    payment_intent_id = Column(String(255), nullable=True, index=True, comment="支付意图ID")
    payment_attempt = Column(Integer, nullable=False, default=1, comment="支付尝试次数")
    paid_amount = Column(Numeric(precision=12, scale=2), nullable=True, comment="实收金额")
    refunded_amount = Column(Numeric(precision=12, scale=2), nullable=False, default=0, comment="已退款金额")
    failure_reason = Column(Text, nullable=True, comment="支付失败原因")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间",
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间",
    )

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )

    def __repr__(self):
        return f"<OrderModel(id={self.id}, order_number='{self.order_number}', payment_status='{self.payment_status}')>"


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False, comment="商品ID")
    name = Column(String(255), nullable=False, comment="商品名称")
    quantity = Column(Integer, nullable=False, comment="数量")
    price = Column(Numeric(precision=12, scale=2), nullable=False, comment="单价")

    order = relationship("OrderModel", back_populates="items")
