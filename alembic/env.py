"""
Configuracion de Alembic para migraciones de base de datos.

- URL de base de datos desde settings (config.py)
- Modelos de las entidades sincronizadas para autogenerate
- PostgreSQL: asyncpg se reemplaza por psycopg para migraciones sync
"""
import sys
from pathlib import Path
from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

# Agregar el directorio raiz al path para imports
ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT_DIR))

from roster_sync.core.config import settings
from roster_sync.infrastructure.database.session import Base

# Importar todos los modelos para que Alembic los detecte
from roster_sync.infrastructure.database.models import (  # noqa: F401
    HubModel,
    SectionModel,
    PartnerSchoolModel,
    SectionPartnerSchoolModel,
    StudentModel,
    StudentEnrollModel,
)

config = context.config

db_url = settings.effective_database_url.replace("+asyncpg", "+psycopg")
config.set_main_option("sqlalchemy.url", db_url)
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """
    Genera el SQL sin conectarse a la base de datos.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
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
