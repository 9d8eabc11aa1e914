from contextlib import asynccontextmanager

import redis.asyncio as aioredis
import structlog
import uvicorn
from fastapi import FastAPI, Request
from redis.exceptions import RedisError

from shared.errors import register_error_handlers
from shared.logging_config import setup_logging
from . import config
from .routers import router as cart_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.SERVICE_NAME, config.LOG_LEVEL, config.LOG_JSON)
    app.state.redis = aioredis.from_url(config.REDIS_URL, decode_responses=True)
    logger.info("service_started", port=config.PORT)
    yield
    await app.state.redis.aclose()


app = FastAPI(title="cart-service", lifespan=lifespan)
register_error_handlers(app)
app.include_router(cart_router)


@app.get("/health")
async def health(request: Request):
    try:
        redis_ok = bool(await request.app.state.redis.ping())
    except RedisError:
        redis_ok = False
    return {"status": "ok", "service": config.SERVICE_NAME, "redis": redis_ok}


if __name__ == "__main__":
    uvicorn.run("services.cart_service.app.main:app", host="0.0.0.0", port=config.PORT)
