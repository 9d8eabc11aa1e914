from alembic import context

from shared.migrations import run_alembic
from services.orders_service.app import config
from services.orders_service.app.models import Base

run_alembic(context, Base.metadata, config.DATABASE_URL, version_table='alembic_version_orders')
