"""
FileMakerClientManager - Instancia compartida del cliente de la Data API.

Un solo cliente por proceso: todos los syncs comparten su token de sesion
en lugar de abrir una sesion FileMaker por request.
"""
from typing import Optional

from loguru import logger

from roster_sync.core.config import settings

from .client import FileMakerClient


class FileMakerClientManager:
    """
    Gestor del ciclo de vida del cliente FileMaker.

    Uso:
        client = FileMakerClientManager.get_client()
        ...
        await FileMakerClientManager.close()  # en shutdown
    """

    _client: Optional[FileMakerClient] = None

    @classmethod
    def get_client(cls) -> FileMakerClient:
        """Retorna el cliente compartido, creandolo en el primer uso."""
        if cls._client is None:
            cls._client = FileMakerClient.from_settings(settings)
            logger.info(f"Cliente FileMaker creado para {settings.FILEMAKER_SERVER or '<sin servidor>'}")
        return cls._client

    @classmethod
    async def close(cls) -> bool:
        """
        Cierra la sesion FileMaker (si hay token) y el cliente HTTP.

        Returns:
            bool: True si habia un cliente abierto
        """
        client = cls._client
        if client is None:
            return False
        cls._client = None
        try:
            await client.logout()
        except Exception as e:
            logger.warning(f"No se pudo cerrar la sesion FileMaker: {e}")
        await client.aclose()
        return True
