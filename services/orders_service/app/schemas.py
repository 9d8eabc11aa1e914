from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# 🧾 Запрос на создание заказа
class CreateOrderRequest(CamelModel):
    # userId проверяется вручную, чтобы вернуть 400 {"error": ...}, а не 422
    user_id: Optional[str] = None
    shipping_address: Optional[str] = None


class CreateOrderResponse(CamelModel):
    message: str
    order_id: int


CENT = Decimal("0.01")


def as_money(value):
    # float из JSON переводим через str, иначе Decimal(10.1) = 10.0999...
    if isinstance(value, float):
        return str(value)
    return value


def check_cents(value: Decimal) -> Decimal:
    """Amounts are stored as NUMERIC(.., 2); a sub-cent value would be rounded on write."""
    if not value.is_finite() or value != value.quantize(CENT):
        raise ValueError("amount has more than 2 decimal places")
    return value


# 🛒 Снимок корзины из cart-service
class CartLine(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    product_id: str
    quantity: int
    price: Decimal

    @field_validator("price", mode="before")
    @classmethod
    def price_from_json(cls, value):
        return as_money(value)

    @field_validator("price")
    @classmethod
    def price_in_cents(cls, value: Decimal) -> Decimal:
        return check_cents(value)


class CartSnapshot(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    items: List[CartLine] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")

    @field_validator("total_amount", mode="before")
    @classmethod
    def total_from_json(cls, value):
        return as_money(value)

    @field_validator("total_amount")
    @classmethod
    def total_in_cents(cls, value: Decimal) -> Decimal:
        return check_cents(value)


# 📦 Заказ для чтения
class OrderItemOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    product_id: str
    quantity: int
    price: Decimal

    @field_serializer("price")
    def _price(self, value: Decimal) -> float:
        return float(value)


class OrderOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    order_id: int
    user_id: str
    status: str
    total_amount: Decimal
    shipping_address: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemOut] = Field(default_factory=list)

    @field_serializer("total_amount")
    def _total(self, value: Decimal) -> float:
        return float(value)
