from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String
from sqlalchemy.orm import declarative_base

from shared.database import utcnow
from shared.outbox import OutboxMixin

Base = declarative_base()


class PaymentStatus(str, Enum):
    PROCESSING = "Processing"
    SUCCESSFUL = "Successful"
    FAILED = "Failed"


class Payment(Base):
    __tablename__ = "payments"

    payment_id = Column(Integer, primary_key=True, autoincrement=True)
    # ссылка на заказ из другой БД, внешний ключ не проверяется;
    # уникальность защищает от повторной доставки OrderCreated
    order_id = Column(Integer, nullable=False, unique=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(50), nullable=False, default=PaymentStatus.PROCESSING.value)
    transaction_id = Column(String(128), nullable=True)
    payment_system = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_nonneg"),
        CheckConstraint(
            "status IN ('Processing', 'Successful', 'Failed')",
            name="ck_payments_status_valid",
        ),
    )

    def __repr__(self) -> str:
        return f"<Payment(payment_id={self.payment_id}, order_id={self.order_id}, status={self.status})>"


class OutboxEvent(OutboxMixin, Base):
    pass
