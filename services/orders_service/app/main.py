import asyncio
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request

from shared.broker import BrokerConnection, ReconnectPolicy
from shared.database import ensure_database_exists
from shared.errors import register_error_handlers
from shared.logging_config import setup_logging
from shared.outbox import OutboxRelay
from . import config
from .cart_client import CartClient
from .database import async_session_maker, engine
from .models import Base, OutboxEvent
from .reconciler import OrderStatusReconciler
from .routers import router as orders_router

logger = structlog.get_logger(__name__)


async def run_messaging(broker: BrokerConnection, relay: OutboxRelay, reconciler: OrderStatusReconciler) -> None:
    # Подписчик на оплату стартует только после подключения к RabbitMQ
    await broker.connect()
    try:
        await asyncio.gather(relay.run(), broker.run_consumer(reconciler))
    except Exception:
        logger.exception("messaging_stopped")
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.SERVICE_NAME, config.LOG_LEVEL, config.LOG_JSON)

    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, ensure_database_exists, config.DATABASE_URL)
    # В development создаём таблицы сами, в production: alembic upgrade head
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    broker = BrokerConnection(
        config.RABBITMQ_URL,
        reconnect_policy=ReconnectPolicy(interval=config.RABBITMQ_RECONNECT_INTERVAL),
    )
    relay = OutboxRelay(
        async_session_maker,
        OutboxEvent,
        broker.publish,
        batch_size=config.OUTBOX_BATCH_SIZE,
        poll_interval_seconds=config.OUTBOX_POLL_INTERVAL,
    )
    app.state.broker = broker
    app.state.relay = relay
    app.state.cart_client = CartClient(config.CART_SERVICE_URL, timeout=config.CART_TIMEOUT_SECONDS)

    messaging = asyncio.create_task(run_messaging(broker, relay, OrderStatusReconciler(async_session_maker)))
    logger.info("service_started", port=config.PORT)
    try:
        yield
    finally:
        relay.stop()
        messaging.cancel()
        await asyncio.gather(messaging, return_exceptions=True)
        await broker.close()
        await app.state.cart_client.aclose()
        await engine.dispose()
        logger.info("service_stopped")


app = FastAPI(title="orders-service", lifespan=lifespan)
register_error_handlers(app)
app.include_router(orders_router)


@app.get("/health")
async def health(request: Request):
    broker = getattr(request.app.state, "broker", None)
    relay = getattr(request.app.state, "relay", None)
    return {
        "status": "ok",
        "service": config.SERVICE_NAME,
        "broker": broker.is_ready() if broker else False,
        "outboxPending": await relay.pending_count() if relay else None,
    }


if __name__ == "__main__":
    uvicorn.run("services.orders_service.app.main:app", host="0.0.0.0", port=config.PORT)
