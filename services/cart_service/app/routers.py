import json
from decimal import Decimal
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from redis.asyncio import Redis
from redis.exceptions import RedisError

from shared.errors import InvalidRequest, SagaError

router = APIRouter(prefix="/cart", tags=["cart"])
logger = structlog.get_logger(__name__)


class CartItemAdd(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[Decimal] = None


def get_redis(request: Request) -> Redis:
    return request.app.state.redis


def cart_key(user_id: str) -> str:
    return f"cart:{user_id}"


def empty_cart() -> dict:
    return {"items": [], "totalAmount": 0}


async def load_cart(redis: Redis, user_id: str) -> dict:
    raw = await redis.get(cart_key(user_id))
    if raw is None:
        return empty_cart()
    try:
        return json.loads(raw)
    except ValueError as exc:
        logger.error("cart_corrupt", user_id=user_id, error=str(exc))
        raise SagaError() from exc


@router.get("/{user_id}")
async def get_cart(user_id: str, redis: Redis = Depends(get_redis)):
    try:
        return await load_cart(redis, user_id)
    except RedisError as exc:
        logger.error("cart_read_failed", user_id=user_id, error=str(exc))
        raise SagaError() from exc


@router.post("/{user_id}/items")
async def add_item(user_id: str, payload: CartItemAdd, redis: Redis = Depends(get_redis)):
    if not payload.product_id or not payload.quantity or not payload.price:
        raise InvalidRequest("productId, quantity, and price are required")

    try:
        cart = await load_cart(redis, user_id)
        # одинаковые товары не склеиваются: каждая позиция отдельной строкой
        cart["items"].append({
            "productId": payload.product_id,
            "quantity": payload.quantity,
            "price": float(payload.price),
        })
        total = sum(Decimal(str(it["price"])) * it["quantity"] for it in cart["items"])
        cart["totalAmount"] = float(total)
        await redis.set(cart_key(user_id), json.dumps(cart))
    except RedisError as exc:
        logger.error("cart_write_failed", user_id=user_id, error=str(exc))
        raise SagaError() from exc

    logger.info("cart_item_added", user_id=user_id, product_id=payload.product_id, lines=len(cart["items"]))
    return cart


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cart(user_id: str, redis: Redis = Depends(get_redis)):
    try:
        await redis.delete(cart_key(user_id))
    except RedisError as exc:
        logger.error("cart_clear_failed", user_id=user_id, error=str(exc))
        raise SagaError() from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
