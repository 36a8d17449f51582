import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from config import get_config
from models import db

# Alembic Config object, giving access to the values in alembic.ini
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# DATABASE_URL wins; otherwise use the URI of the active FLASK_ENV config
flask_env = os.getenv("FLASK_ENV") or "production"
db_url = os.getenv("DATABASE_URL") or get_config(flask_env).SQLALCHEMY_DATABASE_URI

# Importing models registers users, ideas and idea_versions on this metadata
target_metadata = db.metadata

# SQLite cannot ALTER most constraints in place
render_as_batch = db_url.startswith("sqlite")


def run_migrations_offline():
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=render_as_batch,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = create_engine(db_url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=render_as_batch,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
