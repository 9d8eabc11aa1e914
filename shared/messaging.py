"""
Consumer contract, independent of the broker client.

A consumer receives one decoded event at a time; ``dispatch`` turns the
outcome into an acknowledgment decision which the broker adapter translates
into the wire-level ack/nack.

    success                  -> ACK
    undecodable body         -> DISCARD (poison message, never requeued)
    handler raised           -> consumer's own ``policy.on_failure``
"""
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Generic, Type, TypeVar

import structlog

from shared.errors import MalformedEvent
from shared.events import Event, decode_event

logger = structlog.get_logger(__name__)


class AckDecision(str, Enum):
    ACK = "ack"
    REQUEUE = "requeue"
    DISCARD = "discard"


@dataclass(frozen=True)
class ConsumerPolicy:
    """
    Per-consumer failure handling.

    Requeue on failure only when the consumer's effect is idempotent;
    otherwise a redelivery may apply it twice.
    """

    on_failure: AckDecision
    prefetch_count: int = 1

    def __post_init__(self):
        if self.on_failure is AckDecision.ACK:
            raise ValueError("on_failure must be REQUEUE or DISCARD")
        if self.prefetch_count < 1:
            raise ValueError("prefetch_count must be >= 1")


E = TypeVar("E", bound=Event)


class EventConsumer(Generic[E]):
    queue_name: ClassVar[str]
    event_model: ClassVar[Type[Event]]

    def __init__(self, policy: ConsumerPolicy):
        self.policy = policy

    @property
    def routing_key(self) -> str:
        return self.event_model.routing_key

    async def handle(self, event: E) -> None:
        raise NotImplementedError


async def dispatch(consumer: EventConsumer, body: bytes) -> AckDecision:
    try:
        event = decode_event(consumer.event_model, body)
    except MalformedEvent as exc:
        logger.error(
            "event_malformed",
            queue=consumer.queue_name,
            error=str(exc),
            body=body[:200].decode("utf-8", "replace"),
        )
        return AckDecision.DISCARD

    try:
        await consumer.handle(event)
    except Exception as exc:
        logger.error(
            "event_handling_failed",
            queue=consumer.queue_name,
            event_type=consumer.event_model.event_type,
            decision=consumer.policy.on_failure.value,
            error=str(exc),
            exc_info=True,
        )
        return consumer.policy.on_failure
    return AckDecision.ACK
