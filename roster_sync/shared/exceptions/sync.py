"""
Excepciones de la orquestacion de sincronizaciones.
"""
from roster_sync.shared.exceptions.base import AppException


class SyncAlreadyRunningError(AppException):
    """Ya hay una sincronizacion en curso para la misma entidad."""

    def __init__(self, entity: str, run_id: str):
        self.entity = entity
        self.run_id = run_id
        super().__init__(
            message=f"Ya existe una sincronizacion de '{entity}' en curso (run {run_id})",
            status_code=409,
            error_code="SYNC_ALREADY_RUNNING",
            details={"entity": entity, "run_id": run_id},
        )


class SyncRunNotFoundError(AppException):
    """No existe un run con el ID indicado."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(
            message=f"Sync run con ID '{run_id}' no encontrado",
            status_code=404,
            error_code="SYNC_RUN_NOT_FOUND",
            details={"run_id": run_id},
        )


class UnknownSyncEntityError(AppException):
    """La entidad solicitada no tiene configuracion de sync."""

    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(
            message=f"Entidad de sync desconocida: {entity}",
            status_code=404,
            error_code="UNKNOWN_SYNC_ENTITY",
            details={"entity": entity},
        )
