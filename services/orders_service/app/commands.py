"""
Order Submission Handler.

1. проверяем запрос и забираем снимок корзины из cart-service
2. в одной транзакции пишем orders + order_items + outbox (OrderCreated)
3. OrderCreated уходит в брокер позже, через OutboxRelay

Either all three writes commit or none does, so an order can never exist
without its announcing event (or the reverse).
"""
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.errors import EmptyCart, InvalidRequest, NotFound, PersistenceError
from shared.events import OrderCreated
from shared.outbox import add_outbox_event
from .cart_client import CartClient
from .models import Order, OrderItem, OrderStatus, OutboxEvent

logger = structlog.get_logger(__name__)


async def create_order(
    session: AsyncSession,
    cart_client: CartClient,
    user_id: Optional[str],
    shipping_address: Optional[str],
) -> Order:
    if not user_id:
        raise InvalidRequest("userId is required")

    cart = await cart_client.get_cart(user_id)
    if not cart.items:
        raise EmptyCart()

    try:
        async with session.begin():
            # totalAmount берём из корзины как есть, без пересчёта
            order = Order(
                user_id=user_id,
                status=OrderStatus.PENDING_PAYMENT.value,
                total_amount=cart.total_amount,
                shipping_address=shipping_address,
            )
            session.add(order)
            await session.flush()  # получим order.order_id

            for line in cart.items:
                session.add(OrderItem(
                    order_id=order.order_id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price=line.price,
                ))

            add_outbox_event(session, OutboxEvent, OrderCreated(
                order_id=order.order_id,
                user_id=user_id,
                total_amount=cart.total_amount,
                created_at=order.created_at,
            ))
    except SQLAlchemyError as exc:
        logger.error("order_create_failed", user_id=user_id, error=str(exc))
        raise PersistenceError("Failed to create order") from exc

    logger.info(
        "order_created",
        order_id=order.order_id,
        user_id=user_id,
        total_amount=str(order.total_amount),
        items=len(cart.items),
    )
    return order


async def get_order(session: AsyncSession, order_id: int) -> Order:
    try:
        res = await session.execute(
            select(Order).options(selectinload(Order.items)).where(Order.order_id == order_id)
        )
        order = res.scalar_one_or_none()
    except SQLAlchemyError as exc:
        raise PersistenceError("Failed to load order") from exc
    if order is None:
        raise NotFound("Order not found")
    return order
