"""
Repositorio de carga para entidades sincronizadas desde FileMaker.

No hace commit: el caso de uso abre la transaccion y decide commit/rollback,
de modo que un fallo a mitad de la carga no deja lotes parciales.
"""
from typing import Any, Dict, List, Optional, Sequence, Type

from loguru import logger
from sqlalchemy import delete, func, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from roster_sync.infrastructure.database.session import Base

UPSERT_KEY = "filemaker_record_id"
# Columnas que un upsert nunca pisa en una fila existente
_PRESERVED_ON_UPDATE = ("local_id", UPSERT_KEY, "local_created_at")


def _normalize_rows(rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Todas las filas con el mismo set de columnas (faltantes = None) para executemany."""
    columns: List[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return [{c: row.get(c) for c in columns} for row in rows]


def _last_per_record_id(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Un mismo recordId dos veces en un lote rompe la clave unica; gana la ultima."""
    latest: Dict[Any, Dict[str, Any]] = {}
    for row in rows:
        latest.pop(row.get(UPSERT_KEY), None)
        latest[row.get(UPSERT_KEY)] = row
    return list(latest.values())


class EntitySyncRepository:
    """Operaciones masivas sobre una tabla de entidad sincronizada."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _dialect_insert(self, model: Type[Base]):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model.__table__)
        if dialect == "sqlite":
            return sqlite.insert(model.__table__)
        raise NotImplementedError(f"Upsert no soportado para el dialecto '{dialect}'")

    async def count(self, model: Type[Base]) -> int:
        result = await self.db.execute(select(func.count()).select_from(model))
        return int(result.scalar_one())

    async def get_by_record_id(self, model: Type[Base], record_id: str) -> Optional[Base]:
        """
        Obtiene una fila por el recordId de FileMaker.
        """
        result = await self.db.execute(
            select(model).where(getattr(model, UPSERT_KEY) == record_id)
        )
        return result.scalars().first()

    async def purge_and_insert(
        self,
        model: Type[Base],
        rows: Sequence[Dict[str, Any]],
        batch_size: int = 1000,
    ) -> int:
        """
        Borra todas las filas de la tabla e inserta `rows` en lotes.

        Args:
            model: Modelo ORM de la entidad
            rows: Filas ya transformadas
            batch_size: Filas por INSERT

        Returns:
            int: Filas insertadas
        """
        table = model.__table__
        deleted = await self.db.execute(delete(table))
        logger.info(f"[{table.name}] purge: {deleted.rowcount} fila(s) eliminada(s)")

        normalized = _last_per_record_id(_normalize_rows(rows))
        if len(normalized) < len(rows):
            logger.warning(f"[{table.name}] {len(rows) - len(normalized)} recordId(s) repetido(s) descartado(s)")
        inserted = 0
        for start in range(0, len(normalized), batch_size):
            batch = normalized[start:start + batch_size]
            await self.db.execute(insert(table), batch)
            inserted += len(batch)
            logger.debug(f"[{table.name}] lote insertado: {inserted}/{len(normalized)}")
        return inserted

    async def upsert_by_record_id(self, model: Type[Base], rows: Sequence[Dict[str, Any]]) -> int:
        """
        INSERT ... ON CONFLICT (filemaker_record_id) DO UPDATE.

        Las filas existentes se sobreescriben con todos los campos recibidos;
        las filas locales que no vienen en `rows` no se tocan.
        """
        if not rows:
            return 0

        normalized = _normalize_rows(rows)
        if any(not row.get(UPSERT_KEY) for row in normalized):
            raise ValueError(f"Todas las filas deben traer '{UPSERT_KEY}' para el upsert")
        normalized = _last_per_record_id(normalized)

        stmt = self._dialect_insert(model)
        update_columns = [c for c in normalized[0] if c not in _PRESERVED_ON_UPDATE]
        if update_columns:
            stmt = stmt.on_conflict_do_update(
                index_elements=[UPSERT_KEY],
                set_={c: stmt.excluded[c] for c in update_columns},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=[UPSERT_KEY])

        await self.db.execute(stmt, normalized)
        logger.info(f"[{model.__tablename__}] upsert: {len(normalized)} fila(s) procesada(s)")
        return len(normalized)
