"""Alembic runner shared by the per-service ``alembic/env.py`` files."""
from logging.config import fileConfig

from sqlalchemy import MetaData, create_engine, pool

from shared.database import sync_database_url


def run_alembic(context, metadata: MetaData, database_url: str, version_table: str) -> None:
    """
    Run migrations for one service's database.

    Each service keeps its own ``version_table`` so that two services can be
    pointed at one Postgres database in development without clashing.
    """
    config = context.config
    if config.config_file_name is not None:
        fileConfig(config.config_file_name)

    url = sync_database_url(database_url)

    if context.is_offline_mode():
        context.configure(
            url=url,
            target_metadata=metadata,
            version_table=version_table,
            literal_binds=True,
            dialect_opts={"paramstyle": "named"},
        )
        with context.begin_transaction():
            context.run_migrations()
        return

    engine = create_engine(url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=metadata, version_table=version_table)
        with context.begin_transaction():
            context.run_migrations()
