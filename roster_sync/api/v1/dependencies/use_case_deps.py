"""
Dependencias para inyeccion de casos de uso.
"""
from fastapi import Depends

from roster_sync.application.use_cases.sync_use_cases import SyncUseCases, sync_run_registry
from roster_sync.infrastructure.database.session import AsyncSessionLocal
from roster_sync.infrastructure.filemaker.client import FileMakerClient
from roster_sync.infrastructure.filemaker.client_manager import FileMakerClientManager


def get_filemaker_client() -> FileMakerClient:
    """
    Dependencia para obtener el cliente FileMaker compartido.

    Returns:
        FileMakerClient: Cliente de la Data API
    """
    return FileMakerClientManager.get_client()


async def get_sync_use_cases(
    client: FileMakerClient = Depends(get_filemaker_client)
) -> SyncUseCases:
    """
    Dependencia para obtener los casos de uso de sincronizacion.

    La carga corre en background despues de responder, por eso recibe la
    factory de sesiones y no la sesion del request.

    Args:
        client: Cliente FileMaker

    Returns:
        SyncUseCases: Instancia de casos de uso de sync
    """
    return SyncUseCases(client, AsyncSessionLocal, registry=sync_run_registry)
