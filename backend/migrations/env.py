from __future__ import annotations
from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context
from dotenv import load_dotenv
import os, sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from stallsync.models.authz import Base  # noqa: E402
from stallsync.models import documents, audit  # noqa: E402,F401

load_dotenv()
config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def database_url() -> str:
    """``alembic -x db_url=...`` wins over DATABASE_URL, which wins over the dev default."""
    return context.get_x_argument(as_dictionary=True).get('db_url') or os.getenv('DATABASE_URL', 'sqlite:///dev.db')


config.set_main_option('sqlalchemy.url', database_url())
target_metadata = Base.metadata
# documents.version is compared so a dropped version column shows up in autogenerate
options = dict(target_metadata=target_metadata, render_as_batch=True, compare_type=True)

if context.is_offline_mode():
    context.configure(url=config.get_main_option('sqlalchemy.url'), literal_binds=True, **options)
    with context.begin_transaction():
        context.run_migrations()
else:
    engine = engine_from_config(config.get_section(config.config_ini_section), prefix='sqlalchemy.', poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **options)
        with context.begin_transaction():
            context.run_migrations()
