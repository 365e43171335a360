import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlmodel import SQLModel

# ================================
# Load project settings
# ================================
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from marketplace.config import settings  # noqa: E402
from marketplace import models  # noqa: E402,F401  registers every table

config = context.config
config.set_main_option("sqlalchemy.url", settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata

# SQLite cannot ALTER most constraints in place
BATCH = settings.is_sqlite


def run_migrations_offline():
    context.configure(
        url=settings.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=BATCH,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    # same engine options as the application
    from marketplace.database import engine

    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
            render_as_batch=BATCH,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
