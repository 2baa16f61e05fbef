"""
Endpoints para sincronizacion FileMaker -> base local.

Cada POST verifica el layout y cuenta los registros remotos, responde con
ese conteo y deja la carga corriendo en background. El avance se consulta
en /sync/runs.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse
from loguru import logger

from roster_sync.application.dto.sync_dto import ApiResponseDTO, SyncRequestDTO, SyncRunStatusDTO
from roster_sync.application.use_cases.sync_entities import get_entity_config
from roster_sync.application.use_cases.sync_use_cases import SyncUseCases
from roster_sync.api.v1.dependencies.use_case_deps import get_sync_use_cases
from roster_sync.shared.exceptions.base import AppException


router = APIRouter(prefix="/sync", tags=["Sync"])


def _failure(message: str, code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> JSONResponse:
    body = ApiResponseDTO.server_error(message)
    body.code = code
    return JSONResponse(status_code=code, content=body.model_dump())


async def _trigger_sync(entity: str, dto: Optional[SyncRequestDTO], use_cases: SyncUseCases):
    dto = dto or SyncRequestDTO()
    try:
        config = get_entity_config(entity)
        total, run_id = await use_cases.start_sync(entity, dto)
    except AppException as e:
        # Errores de cliente (409 run en curso, 400 parametro invalido) conservan su codigo
        code = e.status_code if e.status_code < 500 else status.HTTP_500_INTERNAL_SERVER_ERROR
        logger.error(f"Sync {entity}: {e.message}")
        return _failure(e.message, code)
    except Exception as e:
        logger.error(f"Error no controlado iniciando sync {entity}: {e}")
        return _failure(str(e))

    return ApiResponseDTO.success(
        data={"total_count": total, "run_id": run_id},
        message=f"Syncing {config.label} in background: {total}",
    )


_SYNC_RESPONSES = {
    409: {"model": ApiResponseDTO, "description": "Ya hay un sync en curso para la entidad"},
    500: {"model": ApiResponseDTO, "description": "Fallo antes de iniciar el background"},
}


@router.post("/hubs", response_model=ApiResponseDTO, responses=_SYNC_RESPONSES, summary="Sincronizar hubs")
async def sync_hubs(
    dto: Optional[SyncRequestDTO] = Body(None),
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
):
    return await _trigger_sync("hubs", dto, use_cases)


@router.post("/sections", response_model=ApiResponseDTO, responses=_SYNC_RESPONSES, summary="Sincronizar secciones")
async def sync_sections(
    dto: Optional[SyncRequestDTO] = Body(None),
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
):
    return await _trigger_sync("sections", dto, use_cases)


@router.post(
    "/partner-schools",
    response_model=ApiResponseDTO,
    responses=_SYNC_RESPONSES,
    summary="Sincronizar escuelas asociadas"
)
async def sync_partner_schools(
    dto: Optional[SyncRequestDTO] = Body(None),
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
):
    return await _trigger_sync("partner-schools", dto, use_cases)


@router.post(
    "/section-partner-schools",
    response_model=ApiResponseDTO,
    responses=_SYNC_RESPONSES,
    summary="Sincronizar relaciones seccion-escuela"
)
async def sync_section_partner_schools(
    dto: Optional[SyncRequestDTO] = Body(None),
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
):
    return await _trigger_sync("section-partner-schools", dto, use_cases)


@router.post(
    "/student-enrolled",
    response_model=ApiResponseDTO,
    responses=_SYNC_RESPONSES,
    summary="Sincronizar inscripciones de estudiantes"
)
async def sync_student_enrolled(
    dto: Optional[SyncRequestDTO] = Body(None),
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
):
    return await _trigger_sync("student-enrolled", dto, use_cases)


@router.post("/student", response_model=ApiResponseDTO, responses=_SYNC_RESPONSES, summary="Sincronizar estudiantes")
async def sync_student(
    dto: Optional[SyncRequestDTO] = Body(None),
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
):
    return await _trigger_sync("student", dto, use_cases)


@router.get("/runs", response_model=List[SyncRunStatusDTO], summary="Listar runs de sincronizacion")
async def list_sync_runs(
    entity: Optional[str] = Query(None, description="Filtrar por entidad (hubs, sections, ...)"),
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
) -> List[SyncRunStatusDTO]:
    return await use_cases.list_runs(entity)


@router.get("/runs/{run_id}", response_model=SyncRunStatusDTO, summary="Estado de un run (polling)")
async def get_sync_run(
    run_id: str,
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
) -> SyncRunStatusDTO:
    """
    Retorna el estado del run. Un fallo en background se ve aqui como
    state=errored con el detalle en `error`.
    """
    return await use_cases.get_run(run_id)


@router.delete(
    "/runs/{run_id}",
    response_model=SyncRunStatusDTO,
    status_code=status.HTTP_200_OK,
    summary="Cancelar un run en curso"
)
async def cancel_sync_run(
    run_id: str,
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
) -> SyncRunStatusDTO:
    return await use_cases.cancel_run(run_id)
