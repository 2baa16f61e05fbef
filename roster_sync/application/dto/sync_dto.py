"""
DTOs para la sincronizacion FileMaker -> base local.

El trigger responde apenas se conoce el conteo remoto; el avance del run
en background se consulta con SyncRunStatusDTO.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from roster_sync.shared.utils.datetime_utils import DateTimeUtils


class SyncRequestDTO(BaseModel):
    """
    Request para disparar una sincronizacion.

    - `date`: MMDDYYYY; solo registros modificados en o despues de esa fecha
    - `purge`: True borra la tabla local antes de cargar; False hace upsert
      por `filemaker_record_id`
    """
    date: Optional[str] = Field(
        None,
        description="Fecha MMDDYYYY: sincroniza registros modificados desde esa fecha"
    )
    purge: bool = Field(False, description="Si True, elimina los registros locales antes de sincronizar")

    @field_validator("date")
    @classmethod
    def date_must_be_mmddyyyy(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if len(v) != 8 or not v.isdigit() or DateTimeUtils.parse_sync_date(v) is None:
            raise ValueError("date debe tener formato MMDDYYYY")
        return v


class ApiResponseDTO(BaseModel):
    """Envelope de respuesta de los endpoints de sync."""

    status: str
    code: int
    data: Optional[Dict[str, Any]] = None
    message: str

    @classmethod
    def success(cls, data: Dict[str, Any], message: str) -> "ApiResponseDTO":
        return cls(status="success", code=200, data=data, message=message)

    @classmethod
    def server_error(cls, message: str) -> "ApiResponseDTO":
        return cls(status="failed", code=500, data=None, message=message)


class SyncRunStatusDTO(BaseModel):
    """Estado de un run de sincronizacion (polling)."""

    run_id: str
    entity: str
    state: str
    purge: bool
    date: Optional[str] = None
    total_records: int
    fetched_records: int
    loaded_records: int
    message: str
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
