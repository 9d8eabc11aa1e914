"""
Event contracts exchanged over ``orders_exchange``.

Bodies are UTF-8 JSON objects with camelCase keys and no version field.
Decoding ignores unknown keys and fails closed on missing or invalid
required ones.
"""
from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, field_serializer
from pydantic.alias_generators import to_camel

from shared.errors import MalformedEvent

ORDERS_EXCHANGE = "orders_exchange"

ORDER_CREATED_KEY = "order.created"
PAYMENT_SUCCESSFUL_KEY = "payment.successful"

PAYMENT_SERVICE_QUEUE = "payment_service_queue"
ORDER_SERVICE_PAYMENT_QUEUE = "order_service_payment_queue"


class Event(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    event_type: ClassVar[str]
    routing_key: ClassVar[str]

    def aggregate_id(self) -> str:
        raise NotImplementedError

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class OrderCreated(Event):
    event_type: ClassVar[str] = "OrderCreated"
    routing_key: ClassVar[str] = ORDER_CREATED_KEY

    order_id: int
    user_id: str
    total_amount: Decimal
    created_at: datetime

    @field_serializer("total_amount")
    def _amount_as_number(self, value: Decimal) -> float:
        return float(value)

    def aggregate_id(self) -> str:
        return str(self.order_id)


class PaymentSuccessful(Event):
    event_type: ClassVar[str] = "PaymentSuccessful"
    routing_key: ClassVar[str] = PAYMENT_SUCCESSFUL_KEY

    order_id: int
    payment_id: int
    transaction_id: str

    def aggregate_id(self) -> str:
        return str(self.order_id)


E = TypeVar("E", bound=Event)


def decode_event(model: Type[E], body: bytes) -> E:
    try:
        return model.model_validate_json(body)
    except ValidationError as exc:
        raise MalformedEvent(f"Cannot decode {model.event_type}: {exc.error_count()} error(s)") from exc
