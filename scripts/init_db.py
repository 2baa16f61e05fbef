"""
Script para crear las tablas de las entidades sincronizadas.

Para entornos gestionados usar las migraciones (`alembic upgrade head`);
este script sirve para desarrollo local.
"""
import asyncio
import sys
from pathlib import Path

from loguru import logger

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from roster_sync.infrastructure.database.session import Base, close_db, init_db  # noqa: E402


async def main():
    logger.info("Inicializando base de datos...")

    try:
        await init_db()
        logger.success(f"Tablas listas: {', '.join(sorted(Base.metadata.tables))}")
    except Exception as e:
        logger.error(f"Error al inicializar base de datos: {e}")
        raise
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
