from enum import Enum

from sqlalchemy import (
    CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
)
from sqlalchemy.orm import declarative_base, relationship

from shared.database import utcnow
from shared.outbox import OutboxMixin

# У сервиса заказов своя БД -> свой Base
Base = declarative_base()


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "PendingPayment"
    PAID = "Paid"
    FAILED = "Failed"


class Order(Base):
    __tablename__ = "orders"

    order_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False)
    status = Column(String(50), nullable=False, default=OrderStatus.PENDING_PAYMENT.value)
    total_amount = Column(Numeric(12, 2), nullable=False)  # 💰 берётся из корзины как есть
    shipping_address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_nonneg"),
        CheckConstraint(
            "status IN ('PendingPayment', 'Paid', 'Failed')",
            name="ck_orders_status_valid",
        ),
        Index("ix_orders_user_created", "user_id", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    # одна и та же позиция может встречаться в корзине несколько раз
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.order_id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(128), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_orderitem_quantity_pos"),
        CheckConstraint("price >= 0", name="ck_orderitem_price_nonneg"),
    )


class OutboxEvent(OutboxMixin, Base):
    pass
