"""
RabbitMQ connection manager (aio-pika).

One ``BrokerConnection`` per process owns the connection to ``orders_exchange``
and is injected into every publisher and consumer. Lifecycle:
``connect`` -> ``is_ready`` -> ``publish`` / ``consume`` -> ``close``.
"""
import asyncio
import json
from dataclasses import dataclass
from typing import Optional

import aio_pika
import structlog
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractIncomingMessage, AbstractRobustConnection
from aio_pika.exceptions import AMQPConnectionError

from shared.errors import BrokerUnavailable
from shared.events import ORDERS_EXCHANGE
from shared.messaging import AckDecision, EventConsumer, dispatch

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReconnectPolicy:
    """Fixed-delay reconnection; ``max_attempts=None`` retries forever."""

    interval: float = 5.0
    max_attempts: Optional[int] = None

    def __post_init__(self):
        if self.interval < 0:
            raise ValueError("interval must be >= 0")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


class BrokerConnection:
    def __init__(
        self,
        url: str,
        exchange_name: str = ORDERS_EXCHANGE,
        reconnect_policy: Optional[ReconnectPolicy] = None,
        connect_func=aio_pika.connect_robust,
    ):
        self.url = url
        self.exchange_name = exchange_name
        self.reconnect_policy = reconnect_policy or ReconnectPolicy()
        self._connect_func = connect_func
        self._connection: Optional[AbstractRobustConnection] = None
        self._channel: Optional[AbstractChannel] = None
        self._exchange: Optional[AbstractExchange] = None
        self._ready = asyncio.Event()
        self._publish_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Connect and declare the exchange, retrying per the reconnect policy."""
        policy = self.reconnect_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                self._connection = await self._connect_func(self.url)
                self._channel = await self._connection.channel()
                self._exchange = await self._declare_exchange(self._channel)
            except (AMQPConnectionError, OSError) as exc:
                logger.warning(
                    "broker_connect_failed",
                    attempt=attempt,
                    retry_in=policy.interval,
                    error=str(exc),
                )
                if policy.max_attempts is not None and attempt >= policy.max_attempts:
                    raise BrokerUnavailable(f"Could not connect to broker after {attempt} attempts") from exc
                await asyncio.sleep(policy.interval)
                continue
            self._ready.set()
            logger.info("broker_connected", exchange=self.exchange_name, attempts=attempt)
            return

    async def wait_ready(self) -> None:
        await self._ready.wait()

    def is_ready(self) -> bool:
        return (
            self._ready.is_set()
            and self._connection is not None
            and not self._connection.is_closed
        )

    async def _declare_exchange(self, channel: AbstractChannel) -> AbstractExchange:
        return await channel.declare_exchange(
            self.exchange_name, aio_pika.ExchangeType.TOPIC, durable=True
        )

    async def publish(self, routing_key: str, payload: dict, message_id: Optional[str] = None) -> None:
        if not self.is_ready():
            raise BrokerUnavailable("Broker connection is not established")
        message = aio_pika.Message(
            body=json.dumps(payload).encode("utf-8"),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            message_id=message_id,
        )
        # публикации из одного процесса идут строго по порядку
        async with self._publish_lock:
            await self._exchange.publish(message, routing_key=routing_key)
        logger.debug("message_published", routing_key=routing_key, message_id=message_id)

    async def consume(self, consumer: EventConsumer) -> None:
        """
        Bind ``consumer.queue_name`` to its routing key and process deliveries
        one at a time until cancelled. Runs on its own channel so the
        consumer's prefetch limit does not affect publishing.
        """
        await self.wait_ready()
        channel = await self._connection.channel()
        await channel.set_qos(prefetch_count=consumer.policy.prefetch_count)
        exchange = await self._declare_exchange(channel)
        queue = await channel.declare_queue(consumer.queue_name, durable=True)
        await queue.bind(exchange, routing_key=consumer.routing_key)
        logger.info("consumer_started", queue=consumer.queue_name, routing_key=consumer.routing_key)

        try:
            async with queue.iterator() as messages:
                async for message in messages:
                    decision = await dispatch(consumer, message.body)
                    try:
                        await self.settle(message, decision)
                    except Exception as exc:
                        # неподтверждённое сообщение брокер доставит повторно
                        logger.error(
                            "message_settle_failed",
                            queue=consumer.queue_name,
                            decision=decision.value,
                            error=repr(exc),
                        )
                        continue
                    logger.info(
                        "message_settled",
                        queue=consumer.queue_name,
                        decision=decision.value,
                        redelivered=message.redelivered,
                    )
        finally:
            if not channel.is_closed:
                await channel.close()

    async def run_consumer(self, consumer: EventConsumer) -> None:
        """
        Keep ``consumer`` attached to its queue for the life of the process.

        ``consume`` is restarted after it fails or its iterator ends, waiting
        ``reconnect_policy.interval`` in between. Only cancellation stops it.
        """
        while True:
            try:
                await self.consume(consumer)
                logger.warning("consumer_stopped", queue=consumer.queue_name)
            except Exception as exc:
                logger.error(
                    "consumer_failed",
                    queue=consumer.queue_name,
                    error=repr(exc),
                    restart_in=self.reconnect_policy.interval,
                    exc_info=True,
                )
            await asyncio.sleep(self.reconnect_policy.interval)

    @staticmethod
    async def settle(message: AbstractIncomingMessage, decision: AckDecision) -> None:
        if decision is AckDecision.ACK:
            await message.ack()
        elif decision is AckDecision.REQUEUE:
            await message.nack(requeue=True)
        else:
            await message.nack(requeue=False)

    async def close(self) -> None:
        self._ready.clear()
        if self._connection is not None and not self._connection.is_closed:
            await self._connection.close()
        self._connection = None
        self._channel = None
        self._exchange = None
        logger.info("broker_closed")
