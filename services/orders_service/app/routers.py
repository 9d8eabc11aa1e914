from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from . import commands
from .cart_client import CartClient
from .database import get_session
from .schemas import CreateOrderRequest, CreateOrderResponse, OrderOut

router = APIRouter(prefix="/orders", tags=["orders"])


def get_cart_client(request: Request) -> CartClient:
    return request.app.state.cart_client


@router.post(
    "",
    response_model=CreateOrderResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    payload: CreateOrderRequest,
    session: AsyncSession = Depends(get_session),
    cart_client: CartClient = Depends(get_cart_client),
):
    # Ответ уходит только после COMMIT; событие публикует OutboxRelay
    order = await commands.create_order(session, cart_client, payload.user_id, payload.shipping_address)
    return CreateOrderResponse(message="Order created successfully!", order_id=order.order_id)


@router.get("/{order_id}", response_model=OrderOut, response_model_by_alias=True)
async def get_order(order_id: int, session: AsyncSession = Depends(get_session)):
    order = await commands.get_order(session, order_id)
    return OrderOut.model_validate(order)
