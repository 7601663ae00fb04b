"""
Alembic environment for the WhatsApp CRM schema.

DATABASE_URL (from the process or .env) is the same URL the API uses; it is
switched to psycopg2 here. Every model is imported so autogenerate sees the
full Base.metadata.
"""
import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context
from dotenv import load_dotenv

load_dotenv()

# backend/ on the path so the wacrm package resolves when run from migrations/
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# ============================================
# MODELS
# ============================================
from wacrm.shared.db.base import Base, sync_database_url
from wacrm.modules.tenants.models.company import Company, WhatsAppConfig
from wacrm.modules.catalog.models.form import Form
from wacrm.modules.catalog.models.product import Product
from wacrm.modules.leads.models.lead import Lead
from wacrm.modules.whatsapp.models import WhatsAppMessage, FlowResponse, AutoReplyRule

config = context.config

DATABASE_URL = os.environ.get("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set!")
config.set_main_option("sqlalchemy.url", sync_database_url(DATABASE_URL))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit the migration SQL without a database connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a single unpooled connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
