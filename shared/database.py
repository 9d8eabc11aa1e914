import os
import urllib.parse
from datetime import datetime, timezone

import psycopg2
import psycopg2.extensions
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_engine_and_sessions(database_url: str, echo: bool = False):
    """Движок + фабрика сессий для одного сервиса (у каждого сервиса своя БД)."""
    engine: AsyncEngine = create_async_engine(database_url, echo=echo, future=True, pool_pre_ping=True)
    session_maker = sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    return engine, session_maker


def ensure_database_exists(database_url: str) -> None:
    """
    Проверяет, существует ли база данных из ``database_url``, и создаёт её
    при необходимости, подключаясь к maintenance DB (postgres).

    Работает только для PostgreSQL; для остальных URL ничего не делает.
    Ошибка подключения не прерывает старт: create_all ниже упадёт с понятной ошибкой.
    """
    parsed = urllib.parse.urlparse(database_url)
    if not parsed.scheme.startswith("postgresql"):
        return
    dbname = parsed.path.lstrip("/") if parsed.path else ""
    if not dbname:
        return

    try:
        conn = psycopg2.connect(
            dbname="postgres",
            user=parsed.username or "postgres",
            password=parsed.password or "",
            host=parsed.hostname or "localhost",
            port=parsed.port or 5432,
        )
    except psycopg2.Error as exc:
        logger.warning("database_bootstrap_skipped", database=dbname, error=str(exc))
        return

    try:
        conn.autocommit = True
        cur = conn.cursor()
        cur.execute("SELECT 1 FROM pg_database WHERE datname = %s", (dbname,))
        if cur.fetchone() is None:
            cur.execute("CREATE DATABASE %s", (psycopg2.extensions.AsIs(dbname),))
            logger.info("database_created", database=dbname)
        cur.close()
    finally:
        conn.close()


def sync_database_url(database_url: str) -> str:
    # alembic работает через синхронный драйвер (psycopg2)
    return database_url.replace("+asyncpg", "")


def env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")
