"""
CLI: FileMaker -> base local, sin pasar por el API.

Uso recomendado:
  - Ejecutar como job (cron/systemd timer) para cargas completas nocturnas.
  - Cada entidad corre el mismo flujo que el endpoint, pero el proceso espera
    a que termine la carga y sale con codigo != 0 si alguna fallo.

Ejecucion:
  python scripts/sync_entities.py hubs sections
  python scripts/sync_entities.py all --purge
  python scripts/sync_entities.py student --date 01152024
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from roster_sync.application.dto.sync_dto import SyncRequestDTO  # noqa: E402
from roster_sync.application.use_cases.sync_entities import list_entity_names  # noqa: E402
from roster_sync.application.use_cases.sync_use_cases import SyncState, SyncUseCases  # noqa: E402
from roster_sync.infrastructure.database.session import AsyncSessionLocal, close_db  # noqa: E402
from roster_sync.infrastructure.filemaker.client_manager import FileMakerClientManager  # noqa: E402


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sincroniza entidades FileMaker hacia la base local")
    parser.add_argument(
        "entities",
        nargs="+",
        choices=list_entity_names() + ["all"],
        help="Entidades a sincronizar (en el orden dado) o 'all'",
    )
    parser.add_argument("--date", default=None, help="MMDDYYYY: solo registros modificados desde esa fecha")
    parser.add_argument("--purge", action="store_true", help="Vaciar cada tabla antes de cargar")
    return parser.parse_args(argv)


async def run(entities, dto: SyncRequestDTO) -> int:
    use_cases = SyncUseCases(FileMakerClientManager.get_client(), AsyncSessionLocal)
    failures = 0
    try:
        for entity in entities:
            try:
                total, run_id = await use_cases.start_sync(entity, dto)
            except Exception as e:
                logger.error(f"[{entity}] no se pudo iniciar: {e}")
                failures += 1
                continue

            status = await use_cases.registry.wait(run_id)
            if status.state == SyncState.DONE.value:
                logger.success(f"[{entity}] {status.loaded_records}/{total} registro(s) cargados")
            else:
                logger.error(f"[{entity}] termino en estado {status.state}: {status.error}")
                failures += 1
    finally:
        await FileMakerClientManager.close()
        await close_db()
    return failures


def main(argv=None) -> int:
    args = _parse_args(argv)
    entities = list_entity_names() if "all" in args.entities else args.entities
    try:
        dto = SyncRequestDTO(date=args.date, purge=args.purge)
    except ValueError as e:
        raise SystemExit(f"Parametros invalidos: {e}")

    logger.info(f"Iniciando sync de {', '.join(entities)} (purge={dto.purge}, date={dto.date})")
    failures = asyncio.run(run(entities, dto))
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
