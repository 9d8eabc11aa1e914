"""
Полный путь заказа без внешних сервисов:
POST /orders -> outbox -> order.created -> платёж -> outbox -> payment.successful -> Paid.
"""
from shared.events import ORDER_CREATED_KEY, PAYMENT_SUCCESSFUL_KEY
from shared.messaging import AckDecision, dispatch
from shared.outbox import OutboxRelay
from services.orders_service.app.models import OutboxEvent as OrderOutbox
from services.orders_service.app.reconciler import OrderStatusReconciler
from services.payments_service.app.gateway import SimulatedGateway
from services.payments_service.app.models import OutboxEvent as PaymentOutbox
from services.payments_service.app.processor import PaymentProcessor
from conftest import BAKER_STREET_CART


async def test_order_becomes_paid(orders_client, orders_sessions, payments_sessions, carts, broker):
    carts["u1"] = BAKER_STREET_CART
    orders_relay = OutboxRelay(orders_sessions, OrderOutbox, broker.publish)
    payments_relay = OutboxRelay(payments_sessions, PaymentOutbox, broker.publish)
    processor = PaymentProcessor(payments_sessions, SimulatedGateway(latency=0))
    reconciler = OrderStatusReconciler(orders_sessions)

    created = await orders_client.post("/orders", json={"userId": "u1", "shippingAddress": "221B Baker St"})
    assert created.status_code == 201
    order_id = created.json()["orderId"]
    assert (await orders_client.get(f"/orders/{order_id}")).json()["status"] == "PendingPayment"

    assert await orders_relay.process_batch() == 1
    (order_created,) = broker.messages(ORDER_CREATED_KEY)
    assert await dispatch(processor, order_created.body) is AckDecision.ACK

    assert await payments_relay.process_batch() == 1
    (payment_successful,) = broker.messages(PAYMENT_SUCCESSFUL_KEY)
    assert payment_successful.payload["orderId"] == order_id
    assert await dispatch(reconciler, payment_successful.body) is AckDecision.ACK

    order = (await orders_client.get(f"/orders/{order_id}")).json()
    assert order["status"] == "Paid"


async def test_relay_redelivery_does_not_double_charge(orders_client, orders_sessions, payments_sessions, carts, broker):
    carts["u2"] = BAKER_STREET_CART
    processor = PaymentProcessor(payments_sessions, SimulatedGateway(latency=0))
    payments_relay = OutboxRelay(payments_sessions, PaymentOutbox, broker.publish)

    await orders_client.post("/orders", json={"userId": "u2"})
    await OutboxRelay(orders_sessions, OrderOutbox, broker.publish).process_batch()
    (order_created,) = broker.messages(ORDER_CREATED_KEY)

    # брокер доставил OrderCreated дважды
    await dispatch(processor, order_created.body)
    await dispatch(processor, order_created.body)

    assert await payments_relay.process_batch() == 1
    assert len(broker.messages(PAYMENT_SUCCESSFUL_KEY)) == 1
