"""
Transformacion de registros FileMaker a filas locales.

Funcion pura: no muta el registro de entrada ni mantiene estado, por lo que
aplicarla dos veces al mismo registro produce la misma fila (salvo `now`).
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from roster_sync.infrastructure.filemaker.types import RemoteRecord
from roster_sync.shared.utils.datetime_utils import DateTimeUtils


def _coerce_numeric(value: Any) -> Any:
    """FileMaker serializa un campo numerico vacio como ""."""
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            return float(stripped)
        except ValueError:
            return None
    return value


def to_local_record(
    record: RemoteRecord,
    columns: Optional[Iterable[str]] = None,
    numeric_columns: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Convierte un RemoteRecord en una fila para la tabla local.

    Args:
        record: Registro remoto (fieldData + recordId + modId)
        columns: Columnas de negocio del modelo destino. Los campos remotos
            fuera de este set se descartan; None conserva todos.
        numeric_columns: Columnas numericas ("" -> None)
        now: Timestamp de auditoria (default: ahora en UTC)

    Returns:
        Dict[str, Any]: Fila con procedencia y timestamps locales
    """
    now = now or DateTimeUtils.now_utc()
    allowed = set(columns) if columns is not None else None
    numeric = set(numeric_columns)

    row: Dict[str, Any] = {}
    for name, value in record.field_data.items():
        if allowed is not None and name not in allowed:
            continue
        row[name] = _coerce_numeric(value) if name in numeric else value

    row.update({
        "filemaker_record_id": record.record_id,
        "filemaker_mod_id": record.mod_id,
        "local_created_at": now,
        "local_modified_at": now,
        "local_edited": False,
    })
    return row
