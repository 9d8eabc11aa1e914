import pytest

from shared.database import ensure_database_exists, env_flag, sync_database_url
from shared.errors import EmptyCart, NotFound, SagaError, UpstreamUnavailable
from shared.logging_config import setup_logging


def test_sync_database_url_drops_async_driver():
    assert sync_database_url("postgresql+asyncpg://u:p@db:5432/orders_db") == "postgresql://u:p@db:5432/orders_db"
    assert sync_database_url("postgresql://u:p@db/orders_db") == "postgresql://u:p@db/orders_db"


def test_ensure_database_exists_ignores_non_postgres_urls():
    # не должен даже пытаться подключаться
    ensure_database_exists("sqlite+aiosqlite:///:memory:")


def test_env_flag(monkeypatch):
    monkeypatch.setenv("SAGA_FLAG", "True")
    assert env_flag("SAGA_FLAG") is True
    monkeypatch.setenv("SAGA_FLAG", "0")
    assert env_flag("SAGA_FLAG") is False
    monkeypatch.delenv("SAGA_FLAG")
    assert env_flag("SAGA_FLAG", default="yes") is True


def test_error_defaults():
    assert EmptyCart().status_code == 400
    assert EmptyCart().message == "Cart is empty"
    assert UpstreamUnavailable().status_code == 500
    assert NotFound("Order not found").message == "Order not found"
    assert str(SagaError()) == "Internal server error"


def test_setup_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        setup_logging("orders-service", level="LOUD")
