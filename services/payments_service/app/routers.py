from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFound, PersistenceError
from .database import get_session
from .models import Payment
from .schemas import PaymentOut

router = APIRouter(prefix="/payments", tags=["payments"])


async def _find_payment(session: AsyncSession, *criteria) -> Payment:
    try:
        res = await session.execute(select(Payment).where(*criteria))
        payment = res.scalar_one_or_none()
    except SQLAlchemyError as exc:
        raise PersistenceError("Failed to load payment") from exc
    if payment is None:
        raise NotFound("Payment not found")
    return payment


@router.get("/{payment_id}", response_model=PaymentOut, response_model_by_alias=True)
async def get_payment(payment_id: int, session: AsyncSession = Depends(get_session)):
    return PaymentOut.model_validate(await _find_payment(session, Payment.payment_id == payment_id))


@router.get("/by-order/{order_id}", response_model=PaymentOut, response_model_by_alias=True)
async def get_payment_for_order(order_id: int, session: AsyncSession = Depends(get_session)):
    return PaymentOut.model_validate(await _find_payment(session, Payment.order_id == order_id))
