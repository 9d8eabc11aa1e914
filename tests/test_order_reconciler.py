import json
from decimal import Decimal

import pytest
from sqlalchemy import select

from shared.errors import PersistenceError
from shared.events import PaymentSuccessful
from shared.messaging import AckDecision, dispatch
from services.orders_service.app.models import Order, OrderStatus
from services.orders_service.app.reconciler import OrderStatusReconciler


def payment_body(order_id: int, payment_id: int = 1, **extra) -> bytes:
    body = {"orderId": order_id, "paymentId": payment_id, "transactionId": "txn_abc"}
    body.update(extra)
    return json.dumps(body).encode("utf-8")


async def seed_order(sessions, user_id="u1") -> Order:
    async with sessions() as session:
        order = Order(user_id=user_id, status=OrderStatus.PENDING_PAYMENT.value, total_amount=Decimal("20.00"))
        session.add(order)
        await session.commit()
        return order


async def load_order(sessions, order_id: int) -> Order:
    async with sessions() as session:
        return (await session.execute(select(Order).where(Order.order_id == order_id))).scalar_one()


@pytest.fixture
def reconciler(orders_sessions):
    return OrderStatusReconciler(orders_sessions)


async def test_payment_marks_order_paid(reconciler, orders_sessions):
    order = await seed_order(orders_sessions)

    decision = await dispatch(reconciler, payment_body(order.order_id))

    assert decision is AckDecision.ACK
    paid = await load_order(orders_sessions, order.order_id)
    assert paid.status == OrderStatus.PAID.value
    assert paid.updated_at is not None


async def test_redelivery_is_harmless(reconciler, orders_sessions):
    order = await seed_order(orders_sessions)
    body = payment_body(order.order_id)

    assert await dispatch(reconciler, body) is AckDecision.ACK
    assert await dispatch(reconciler, body) is AckDecision.ACK

    assert (await load_order(orders_sessions, order.order_id)).status == OrderStatus.PAID.value


async def test_only_the_referenced_order_changes(reconciler, orders_sessions):
    first = await seed_order(orders_sessions, "u1")
    second = await seed_order(orders_sessions, "u2")

    await dispatch(reconciler, payment_body(second.order_id))

    assert (await load_order(orders_sessions, first.order_id)).status == OrderStatus.PENDING_PAYMENT.value
    assert (await load_order(orders_sessions, second.order_id)).status == OrderStatus.PAID.value


async def test_unknown_order_is_acknowledged(reconciler):
    assert await dispatch(reconciler, payment_body(98765)) is AckDecision.ACK


async def test_extra_fields_are_ignored(reconciler, orders_sessions):
    order = await seed_order(orders_sessions)

    decision = await dispatch(reconciler, payment_body(order.order_id, amount=20.0, gateway="MockGateway"))

    assert decision is AckDecision.ACK


@pytest.mark.parametrize("body", [
    b"",
    b"{not json",
    json.dumps({"orderId": 1, "paymentId": 1}).encode(),
])
async def test_malformed_message_is_discarded(reconciler, orders_sessions, body):
    order = await seed_order(orders_sessions)

    assert await dispatch(reconciler, body) is AckDecision.DISCARD
    assert (await load_order(orders_sessions, order.order_id)).status == OrderStatus.PENDING_PAYMENT.value


async def test_store_failure_is_requeued(broken_sessions):
    reconciler = OrderStatusReconciler(broken_sessions)

    with pytest.raises(PersistenceError):
        await reconciler.handle(PaymentSuccessful(order_id=1, payment_id=1, transaction_id="txn_abc"))
    assert await dispatch(reconciler, payment_body(1)) is AckDecision.REQUEUE


async def test_policies_are_per_consumer(orders_sessions, payments_sessions):
    from services.payments_service.app.gateway import SimulatedGateway
    from services.payments_service.app.processor import PaymentProcessor

    reconciler = OrderStatusReconciler(orders_sessions)
    processor = PaymentProcessor(payments_sessions, SimulatedGateway(latency=0))

    assert reconciler.policy.on_failure is AckDecision.REQUEUE
    assert processor.policy.on_failure is AckDecision.DISCARD
    assert reconciler.routing_key == "payment.successful"
    assert processor.routing_key == "order.created"
