"""
Order Status Reconciler: ``payment.successful`` -> orders.status = 'Paid'.

Setting Paid is idempotent, so a failed update is requeued: a redelivery
(to this or another instance) can only repeat a harmless write.
"""
import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from shared.database import utcnow
from shared.errors import PersistenceError
from shared.events import ORDER_SERVICE_PAYMENT_QUEUE, PaymentSuccessful
from shared.messaging import AckDecision, ConsumerPolicy, EventConsumer
from .models import Order, OrderStatus

logger = structlog.get_logger(__name__)


class OrderStatusReconciler(EventConsumer[PaymentSuccessful]):
    queue_name = ORDER_SERVICE_PAYMENT_QUEUE
    event_model = PaymentSuccessful

    def __init__(self, session_factory, policy: ConsumerPolicy | None = None):
        super().__init__(policy or ConsumerPolicy(on_failure=AckDecision.REQUEUE))
        self.session_factory = session_factory

    async def handle(self, event: PaymentSuccessful) -> None:
        logger.info("payment_successful_received", order_id=event.order_id, payment_id=event.payment_id)
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(Order)
                    .where(Order.order_id == event.order_id)
                    .values(status=OrderStatus.PAID.value, updated_at=utcnow())
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to mark order {event.order_id} as paid") from exc

        if result.rowcount == 0:
            # повторять бессмысленно: такого заказа нет
            logger.warning("order_not_found_for_payment", order_id=event.order_id)
            return
        logger.info("order_paid", order_id=event.order_id, transaction_id=event.transaction_id)
