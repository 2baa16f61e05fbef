"""
Casos de uso para sincronizar entidades desde FileMaker hacia la base local.

Flujo por run:
    idle -> verifying_layout -> counting_records -> (empty | paginating)
         -> transforming -> loading -> done
con `errored` / `cancelled` como estados terminales alternativos.

- La fase sincrona (verificar layout + conteo) se ejecuta dentro del request
  y sus errores llegan al caller.
- La fase de background (paginar, transformar, cargar) corre en un
  asyncio.Task; sus errores quedan en el registro de runs y en los logs.
- Un solo run en curso por entidad (single-flight).
"""

from __future__ import annotations

import asyncio
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from roster_sync.application.dto.sync_dto import SyncRequestDTO, SyncRunStatusDTO
from roster_sync.application.services.record_transformer import to_local_record
from roster_sync.application.use_cases.sync_entities import EntitySyncConfig, get_entity_config
from roster_sync.core.config import settings
from roster_sync.infrastructure.database.models import field_columns, numeric_columns
from roster_sync.infrastructure.filemaker.client import FileMakerClient
from roster_sync.infrastructure.filemaker.types import QueryClause, RemoteRecord
from roster_sync.infrastructure.repositories.entity_sync_repository import EntitySyncRepository
from roster_sync.shared.exceptions.filemaker import LayoutNotFoundError
from roster_sync.shared.exceptions.sync import SyncAlreadyRunningError, SyncRunNotFoundError
from roster_sync.shared.utils.datetime_utils import DateTimeUtils

SessionFactory = Callable[[], AsyncSession]


class SyncState(str, Enum):
    IDLE = "idle"
    VERIFYING_LAYOUT = "verifying_layout"
    COUNTING_RECORDS = "counting_records"
    EMPTY = "empty"
    PAGINATING = "paginating"
    TRANSFORMING = "transforming"
    LOADING = "loading"
    DONE = "done"
    ERRORED = "errored"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({SyncState.DONE, SyncState.ERRORED, SyncState.CANCELLED})


@dataclass
class _SyncRun:
    run_id: str
    entity: str
    purge: bool
    date: Optional[str]
    state: SyncState
    message: str
    created_at: datetime
    updated_at: datetime
    total_records: int = 0
    fetched_records: int = 0
    loaded_records: int = 0
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    task: Optional[asyncio.Task] = None

    def to_dto(self) -> SyncRunStatusDTO:
        return SyncRunStatusDTO(
            run_id=self.run_id,
            entity=self.entity,
            state=self.state.value,
            purge=self.purge,
            date=self.date,
            total_records=self.total_records,
            fetched_records=self.fetched_records,
            loaded_records=self.loaded_records,
            message=self.message,
            created_at=self.created_at,
            updated_at=self.updated_at,
            completed_at=self.completed_at,
            error=self.error,
        )


class SyncRunRegistry:
    """
    Registro en memoria de runs de sincronizacion.

    Guarda el estado de cada run para polling y mantiene la referencia al
    task de background. `_active` implementa el guard por entidad.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, _SyncRun] = {}
        self._active: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def reserve(self, entity: str, dto: SyncRequestDTO) -> _SyncRun:
        """Crea un run para `entity` o falla si ya hay uno en curso."""
        now = DateTimeUtils.now_utc()
        async with self._lock:
            active_id = self._active.get(entity)
            if active_id is not None:
                raise SyncAlreadyRunningError(entity, active_id)
            run = _SyncRun(
                run_id=str(uuid.uuid4()),
                entity=entity,
                purge=dto.purge,
                date=dto.date,
                state=SyncState.IDLE,
                message="Run creado",
                created_at=now,
                updated_at=now,
            )
            self._runs[run.run_id] = run
            self._active[entity] = run.run_id
        return run

    async def update(self, run_id: str, **changes: Any) -> None:
        async with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                return
            for k, v in changes.items():
                setattr(run, k, v)
            run.updated_at = DateTimeUtils.now_utc()

    async def finish(self, run_id: str, state: SyncState, message: str, error: Optional[str] = None) -> None:
        """Marca el run como terminal y libera el guard de su entidad."""
        async with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                return
            now = DateTimeUtils.now_utc()
            run.state = state
            run.message = message
            run.error = error
            run.updated_at = now
            run.completed_at = now
            if self._active.get(run.entity) == run_id:
                del self._active[run.entity]

    async def get(self, run_id: str) -> SyncRunStatusDTO:
        async with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise SyncRunNotFoundError(run_id)
            return run.to_dto()

    async def list(self, entity: Optional[str] = None) -> List[SyncRunStatusDTO]:
        async with self._lock:
            runs = [r for r in self._runs.values() if entity is None or r.entity == entity]
            return [r.to_dto() for r in sorted(runs, key=lambda r: r.created_at, reverse=True)]

    async def wait(self, run_id: str) -> SyncRunStatusDTO:
        """Espera a que termine el background del run (si lo tiene)."""
        async with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise SyncRunNotFoundError(run_id)
            task = run.task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return await self.get(run_id)

    async def cancel(self, run_id: str) -> SyncRunStatusDTO:
        async with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise SyncRunNotFoundError(run_id)
            task = run.task
        if task is not None and not task.done():
            logger.info(f"Cancelando sync run {run_id} ({run.entity})")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            await self._mark_cancelled_if_pending(run_id)
        return await self.get(run_id)

    async def cancel_all(self) -> int:
        """Cancela todos los runs en curso (shutdown). Retorna cuantos se cancelaron."""
        async with self._lock:
            pending = {r.run_id: r.task for r in self._runs.values() if r.task is not None and not r.task.done()}
        for task in pending.values():
            task.cancel()
        if pending:
            await asyncio.gather(*pending.values(), return_exceptions=True)
        for run_id in pending:
            await self._mark_cancelled_if_pending(run_id)
        return len(pending)

    async def _mark_cancelled_if_pending(self, run_id: str) -> None:
        # Un task cancelado antes de arrancar no llega a ejecutar su propio cierre
        async with self._lock:
            run = self._runs.get(run_id)
            pending = run is not None and run.state not in TERMINAL_STATES
        if pending:
            await self.finish(run_id, SyncState.CANCELLED, "Run cancelado")


# Registro compartido por la aplicacion
sync_run_registry = SyncRunRegistry()


def build_query(config: EntitySyncConfig, date: Optional[str], service_identity: str) -> List[QueryClause]:
    """
    Clausulas del find de una entidad.

    - Con `date` (MMDDYYYY): modificados en o despues de esa fecha.
    - Siempre: omitir los registros cuyo ultimo editor es este servicio, para
      no reimportar lo que el propio sistema escribio en FileMaker.
    """
    clauses: List[QueryClause] = []
    if date:
        clauses.append(QueryClause({config.modified_field: f"≥{DateTimeUtils.to_filemaker_date(date)}"}))
    clauses.append(QueryClause({config.modified_by_field: service_identity}, omit=True))
    return clauses


def page_offsets(total: int, chunk_size: int) -> List[int]:
    """Offsets 1-based de cada pagina: 1, C+1, 2C+1, ..."""
    if total <= 0:
        return []
    return [(page - 1) * chunk_size + 1 for page in range(1, math.ceil(total / chunk_size) + 1)]


class SyncUseCases:
    """
    Orquestador de sincronizaciones FileMaker -> base local.

    Args:
        client: Cliente de la Data API (comparte token entre runs)
        session_factory: Factory de sesiones para la fase de background
        registry: Registro de runs (default: el compartido de la app)
    """

    def __init__(
        self,
        client: FileMakerClient,
        session_factory: SessionFactory,
        registry: Optional[SyncRunRegistry] = None,
        service_identity: Optional[str] = None,
        insert_batch_size: Optional[int] = None,
    ):
        self.client = client
        self.session_factory = session_factory
        self.registry = registry or sync_run_registry
        self.service_identity = service_identity or settings.FILEMAKER_SERVICE_IDENTITY
        self.insert_batch_size = insert_batch_size or settings.SYNC_INSERT_BATCH_SIZE

    async def start_sync(self, entity: str, dto: SyncRequestDTO) -> Tuple[int, str]:
        """
        Verifica el layout, cuenta los registros y lanza la carga en background.

        Returns:
            Tuple[int, str]: (total de registros remotos, run_id)

        Raises:
            UnknownSyncEntityError, SyncAlreadyRunningError, LayoutNotFoundError,
            FileMakerError: fallos de la fase sincrona
        """
        config = get_entity_config(entity)
        run = await self.registry.reserve(config.name, dto)
        logger.info(f"Sync {config.name} iniciado (run {run.run_id}, purge={dto.purge}, date={dto.date})")

        try:
            clauses = build_query(config, dto.date, self.service_identity)

            await self.registry.update(run.run_id, state=SyncState.VERIFYING_LAYOUT, message="Verificando layout...")
            await self.verify_layout(config.layout)

            await self.registry.update(run.run_id, state=SyncState.COUNTING_RECORDS, message="Contando registros...")
            total = await self.count_records(config.layout, clauses)
        except asyncio.CancelledError:
            logger.warning(f"Sync {config.name} cancelado antes del background (run {run.run_id})")
            await self.registry.finish(run.run_id, SyncState.CANCELLED, "Run cancelado")
            raise
        except Exception as e:
            logger.error(f"Sync {config.name} fallo antes del background: {e}")
            await self.registry.finish(run.run_id, SyncState.ERRORED, "Fallo en la fase inicial", error=str(e))
            raise

        if total == 0:
            logger.info(f"Sync {config.name}: no hay registros para sincronizar")
            await self.registry.update(run.run_id, state=SyncState.EMPTY, total_records=0)
            await self.registry.finish(run.run_id, SyncState.DONE, "Sin registros para sincronizar")
            return 0, run.run_id

        await self.registry.update(
            run.run_id,
            state=SyncState.PAGINATING,
            total_records=total,
            message=f"Syncing {config.label} in background: {total}",
        )
        task = asyncio.create_task(self._run_background(run.run_id, config, clauses, total, dto.purge))
        await self.registry.update(run.run_id, task=task)
        return total, run.run_id

    async def verify_layout(self, layout: str) -> None:
        logger.info(f"Verificando que el layout '{layout}' exista...")
        names = await self.client.layout_names()
        if layout not in names:
            logger.error(f"Layout '{layout}' no encontrado. Disponibles: {', '.join(names)}")
            raise LayoutNotFoundError(layout, names)

    async def count_records(self, layout: str, clauses: List[QueryClause]) -> int:
        """Probe de 1 registro para leer foundCount."""
        result = await self.client.find(layout, clauses, {"limit": 1, "offset": 1})
        logger.info(f"Layout '{layout}': {result.data_info.found_count} registro(s) encontrados")
        return result.data_info.found_count

    async def fetch_all(
        self,
        config: EntitySyncConfig,
        clauses: List[QueryClause],
        total: int,
        run_id: Optional[str] = None,
    ) -> List[RemoteRecord]:
        """Pagina en orden creciente de offset y acumula todos los registros."""
        offsets = page_offsets(total, config.chunk_size)
        records: List[RemoteRecord] = []
        for page, offset in enumerate(offsets, start=1):
            result = await self.client.find(
                config.layout, clauses, {"limit": config.chunk_size, "offset": offset}
            )
            records.extend(result.data)
            logger.info(
                f"[{config.name}] pagina {page}/{len(offsets)} (offset {offset}): "
                f"{len(result.data)} registro(s), acumulado {len(records)}"
            )
            if run_id:
                await self.registry.update(run_id, fetched_records=len(records))
        return records

    def transform(self, config: EntitySyncConfig, records: List[RemoteRecord]) -> List[Dict[str, Any]]:
        columns = field_columns(config.model)
        numeric = numeric_columns(config.model)
        now = DateTimeUtils.now_utc()
        return [to_local_record(r, columns=columns, numeric_columns=numeric, now=now) for r in records]

    async def load(self, config: EntitySyncConfig, rows: List[Dict[str, Any]], purge: bool) -> int:
        """Purge + insert por lotes o upsert, en una sola transaccion."""
        async with self.session_factory() as session:
            async with session.begin():
                repo = EntitySyncRepository(session)
                if purge:
                    return await repo.purge_and_insert(config.model, rows, batch_size=self.insert_batch_size)
                return await repo.upsert_by_record_id(config.model, rows)

    async def _run_background(
        self,
        run_id: str,
        config: EntitySyncConfig,
        clauses: List[QueryClause],
        total: int,
        purge: bool,
    ) -> None:
        try:
            records = await self.fetch_all(config, clauses, total, run_id=run_id)

            await self.registry.update(run_id, state=SyncState.TRANSFORMING, message="Transformando registros...")
            rows = self.transform(config, records)

            await self.registry.update(run_id, state=SyncState.LOADING, message="Cargando en base local...")
            loaded = await self.load(config, rows, purge)

            await self.registry.update(run_id, loaded_records=loaded)
            await self.registry.finish(run_id, SyncState.DONE, f"Sincronizados {loaded} {config.label}")
            logger.success(f"Sync {config.name} completado: {loaded} registro(s) (purge={purge})")
        except asyncio.CancelledError:
            logger.warning(f"Sync {config.name} cancelado (run {run_id})")
            await self.registry.finish(run_id, SyncState.CANCELLED, "Run cancelado")
            raise
        except Exception as e:
            logger.exception(f"Error en sync {config.name} (run {run_id}): {e}")
            await self.registry.finish(run_id, SyncState.ERRORED, f"Error sincronizando {config.label}", error=str(e))

    async def get_run(self, run_id: str) -> SyncRunStatusDTO:
        return await self.registry.get(run_id)

    async def list_runs(self, entity: Optional[str] = None) -> List[SyncRunStatusDTO]:
        return await self.registry.list(entity)

    async def cancel_run(self, run_id: str) -> SyncRunStatusDTO:
        return await self.registry.cancel(run_id)
