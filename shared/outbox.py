"""
Transactional outbox.

A service writes the event it wants to announce into its own ``outbox_events``
table inside the same transaction as the state change, and ``OutboxRelay``
publishes those rows to the broker afterwards. The store commit and the event
can therefore never diverge: if the commit happened, the row is there and will
be relayed; if it rolled back, there is nothing to relay.

Delivery is at-least-once (a crash between publish and the ``published_at``
stamp republishes the row), so consumers must tolerate duplicates.
"""
import asyncio
from typing import Any, Awaitable, Callable, List, Optional

import structlog
from sqlalchemy import JSON, Column, DateTime, Integer, String, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database import utcnow
from shared.events import Event

logger = structlog.get_logger(__name__)

PublishFunc = Callable[[str, dict, Optional[str]], Awaitable[Any]]


class OutboxMixin:
    """Columns of ``outbox_events``; each service mixes it into its own Base."""

    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    routing_key = Column(String(255), nullable=False)
    event_type = Column(String(100), nullable=False)
    aggregate_id = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    published_at = Column(DateTime(timezone=True), nullable=True, index=True)


def add_outbox_event(session: AsyncSession, outbox_model, event: Event):
    """Queue ``event`` in the caller's open transaction."""
    row = outbox_model(
        routing_key=event.routing_key,
        event_type=event.event_type,
        aggregate_id=event.aggregate_id(),
        payload=event.to_payload(),
    )
    session.add(row)
    return row


class OutboxRelay:
    """Publishes unpublished outbox rows in insertion order."""

    def __init__(
        self,
        session_factory,
        outbox_model,
        publish: PublishFunc,
        batch_size: int = 100,
        poll_interval_seconds: float = 1.0,
    ):
        self.session_factory = session_factory
        self.outbox_model = outbox_model
        self.publish = publish
        self.batch_size = batch_size
        self.poll_interval_seconds = poll_interval_seconds
        self._running = False

    async def _fetch_unpublished(self, session: AsyncSession) -> List[Any]:
        model = self.outbox_model
        stmt = (
            select(model)
            .where(model.published_at.is_(None))
            .order_by(model.id)
            .limit(self.batch_size)
            .with_for_update(skip_locked=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def process_batch(self) -> int:
        """
        Relay one batch and return how many rows were published.

        Stops at the first failed publish so later events never overtake an
        earlier one; the failed row is retried on the next poll.
        """
        model = self.outbox_model
        async with self.session_factory() as session:
            rows = await self._fetch_unpublished(session)
            if not rows:
                await session.rollback()
                return 0

            published_ids = []
            for row in rows:
                try:
                    await self.publish(row.routing_key, row.payload, str(row.id))
                except Exception as exc:
                    logger.warning(
                        "outbox_publish_failed",
                        outbox_id=row.id,
                        routing_key=row.routing_key,
                        error=str(exc),
                    )
                    break
                published_ids.append(row.id)
                logger.info(
                    "outbox_event_published",
                    outbox_id=row.id,
                    event_type=row.event_type,
                    aggregate_id=row.aggregate_id,
                )

            if published_ids:
                await session.execute(
                    update(model).where(model.id.in_(published_ids)).values(published_at=utcnow())
                )
            await session.commit()
            return len(published_ids)

    async def run(self) -> None:
        """Poll until ``stop`` is called or the task is cancelled."""
        self._running = True
        logger.info("outbox_relay_started", batch_size=self.batch_size, poll_interval=self.poll_interval_seconds)
        try:
            while self._running:
                try:
                    published = await self.process_batch()
                except Exception as exc:
                    # сбой БД бывает и SQLAlchemyError, и голым OSError от asyncpg
                    logger.error("outbox_relay_batch_failed", error=repr(exc), exc_info=True)
                    published = 0
                # полная пачка -> сразу берём следующую
                if published < self.batch_size:
                    await asyncio.sleep(self.poll_interval_seconds)
        finally:
            logger.info("outbox_relay_stopped")

    def stop(self) -> None:
        self._running = False

    async def pending_count(self) -> int:
        model = self.outbox_model
        async with self.session_factory() as session:
            return await session.scalar(
                select(func.count()).select_from(model).where(model.published_at.is_(None))
            )
