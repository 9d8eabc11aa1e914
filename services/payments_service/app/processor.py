"""
Payment Processor: ``order.created`` -> payment row -> gateway -> ``payment.successful``.

Per message:
  A. сохраняем платёж в статусе Processing (или продолжаем уже начатый)
  B. вызываем платёжный шлюз
  C. в одной транзакции: Successful + transaction_id + outbox(PaymentSuccessful)

Any failure in A-C discards the message (no requeue): charging is not
idempotent, so a blind redelivery could charge twice.
"""
import asyncio
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from shared.database import utcnow
from shared.errors import GatewayError, PersistenceError
from shared.events import PAYMENT_SERVICE_QUEUE, OrderCreated, PaymentSuccessful
from shared.messaging import AckDecision, ConsumerPolicy, EventConsumer
from shared.outbox import add_outbox_event
from .gateway import GatewayResult, SimulatedGateway
from .models import OutboxEvent, Payment, PaymentStatus

logger = structlog.get_logger(__name__)


class PaymentProcessor(EventConsumer[OrderCreated]):
    queue_name = PAYMENT_SERVICE_QUEUE
    event_model = OrderCreated

    def __init__(
        self,
        session_factory,
        gateway: SimulatedGateway,
        policy: ConsumerPolicy | None = None,
        gateway_timeout: Optional[float] = None,
    ):
        super().__init__(policy or ConsumerPolicy(on_failure=AckDecision.DISCARD))
        self.session_factory = session_factory
        self.gateway = gateway
        self.gateway_timeout = gateway_timeout

    async def handle(self, event: OrderCreated) -> None:
        logger.info("order_created_received", order_id=event.order_id, amount=str(event.total_amount))
        async with self.session_factory() as session:
            try:
                payment = await self._begin_payment(session, event)
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Failed to record payment for order {event.order_id}") from exc
            if payment is None:
                return

            result = await self._charge(payment)

            try:
                if result.success:
                    payment.status = PaymentStatus.SUCCESSFUL.value
                    payment.transaction_id = result.transaction_id
                    payment.payment_system = self.gateway.name
                    payment.updated_at = utcnow()
                    add_outbox_event(session, OutboxEvent, PaymentSuccessful(
                        order_id=payment.order_id,
                        payment_id=payment.payment_id,
                        transaction_id=result.transaction_id,
                    ))
                else:
                    # PaymentFailed не публикуется: компенсации заказа нет
                    payment.status = PaymentStatus.FAILED.value
                    payment.updated_at = utcnow()
                await session.commit()
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Failed to settle payment {payment.payment_id}") from exc

        logger.info(
            "payment_settled",
            payment_id=payment.payment_id,
            order_id=payment.order_id,
            status=payment.status,
            transaction_id=payment.transaction_id,
        )

    async def _begin_payment(self, session, event: OrderCreated) -> Optional[Payment]:
        """
        Return the Processing payment to charge, or None if this order was
        already settled (a duplicate delivery).
        """
        res = await session.execute(select(Payment).where(Payment.order_id == event.order_id))
        payment = res.scalar_one_or_none()
        if payment is not None:
            if payment.status != PaymentStatus.PROCESSING.value:
                logger.info(
                    "order_created_duplicate",
                    order_id=event.order_id,
                    payment_id=payment.payment_id,
                    status=payment.status,
                )
                return None
            logger.info("payment_resumed", order_id=event.order_id, payment_id=payment.payment_id)
            # не держим транзакцию открытой на время вызова шлюза
            await session.commit()
            return payment

        payment = Payment(
            order_id=event.order_id,
            amount=event.total_amount,
            status=PaymentStatus.PROCESSING.value,
        )
        session.add(payment)
        await session.commit()
        logger.info("payment_processing", payment_id=payment.payment_id, order_id=event.order_id)
        return payment

    async def _charge(self, payment: Payment) -> GatewayResult:
        try:
            if self.gateway_timeout is None:
                return await self.gateway.charge(payment.order_id, payment.amount)
            return await asyncio.wait_for(
                self.gateway.charge(payment.order_id, payment.amount),
                timeout=self.gateway_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise GatewayError(f"Gateway timed out after {self.gateway_timeout}s") from exc
