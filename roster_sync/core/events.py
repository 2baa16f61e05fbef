"""
Manejadores de eventos de inicio y cierre de la aplicacion.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI
from loguru import logger

from roster_sync.core.config import settings
from roster_sync.application.use_cases.sync_use_cases import sync_run_registry
from roster_sync.infrastructure.database.session import init_db, close_db
from roster_sync.infrastructure.filemaker.client_manager import FileMakerClientManager


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        """Inicializa recursos al inicio de la aplicacion."""
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            _validate_config()

            # Crea las tablas de las entidades sincronizadas si no existen
            await init_db()
            logger.info("Base de datos inicializada")

            logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            logger.success("Aplicacion iniciada correctamente")

            _print_available_urls()

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _validate_config() -> None:
    """
    Valida la configuracion de FileMaker.

    Credenciales faltantes no impiden arrancar: el primer sync falla con
    ConfigurationError. Aqui solo se avisa.
    """
    warnings = []

    required = {
        "FILEMAKER_SERVER": settings.FILEMAKER_SERVER,
        "FILEMAKER_DATABASE": settings.FILEMAKER_DATABASE,
        "FILEMAKER_USERNAME": settings.FILEMAKER_USERNAME,
        "FILEMAKER_PASSWORD": settings.FILEMAKER_PASSWORD,
    }
    for name, value in required.items():
        if not value:
            warnings.append(f"{name} no configurada - la sincronizacion no funcionara")

    if not settings.FILEMAKER_VERIFY_SSL:
        warnings.append("FILEMAKER_VERIFY_SSL=False - no se valida el certificado del servidor FileMaker")

    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def _print_available_urls() -> None:
    """Imprime las URLs disponibles de la aplicacion."""
    if settings.HOST == "0.0.0.0":
        access_host = "localhost"
    else:
        access_host = settings.HOST

    base_url = f"http://{access_host}:{settings.PORT}"

    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info("<bold><green>URLS DISPONIBLES:</green></bold>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info(f"<cyan>  Swagger UI:  {base_url}/docs</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Health:      {base_url}/health</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Sync runs:   {base_url}/api/v1/sync/runs</cyan>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        """Libera recursos al cerrar la aplicacion."""
        logger.info("Cerrando aplicacion...")

        cancelled = await sync_run_registry.cancel_all()
        logger.info(f"Syncs en curso cancelados: {cancelled}")

        if await FileMakerClientManager.close():
            logger.info("Cliente FileMaker cerrado")

        await close_db()
        logger.info("Conexiones de base de datos cerradas")

        logger.success("Aplicacion cerrada correctamente")

    return shutdown


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Ciclo de vida de la aplicacion: startup antes de servir, shutdown al salir."""
    await startup_handler(app)()
    try:
        yield
    finally:
        await shutdown_handler(app)()
