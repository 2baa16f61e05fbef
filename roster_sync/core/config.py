"""
Configuracion central de la aplicacion.
Gestiona variables de entorno y configuraciones globales.
Soporta configuracion dinamica para desarrollo (ENVIRONMENT=development)
y produccion (ENVIRONMENT=production).
"""
import json
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field


class Settings(BaseSettings):
    """
    Clase de configuracion de la aplicacion.
    Lee variables de entorno y proporciona valores por defecto.

    Las credenciales de FileMaker no tienen default: si faltan, la primera
    llamada a la Data API falla con ConfigurationError (no se reintenta).
    """

    # Configuracion de la aplicacion
    APP_NAME: str = Field(default="Roster Sync")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Configuracion del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # Base de datos - Componentes separados
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_USER: str = Field(default="roster_user")
    DATABASE_PASSWORD: str = Field(default="roster_pass")
    DATABASE_NAME: str = Field(default="roster_db")

    # Base de datos - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)

    # CORS (acepta lista JSON o "*" para todos los origenes)
    CORS_ORIGINS: str = Field(default="*")

    # FileMaker Data API
    FILEMAKER_SERVER: str = Field(default="")
    FILEMAKER_DATABASE: str = Field(default="")
    FILEMAKER_USERNAME: str = Field(default="")
    FILEMAKER_PASSWORD: str = Field(default="")
    FILEMAKER_API_VERSION: str = Field(default="vLatest")
    # El servidor FileMaker usa certificado autofirmado
    FILEMAKER_VERIFY_SSL: bool = Field(default=False)
    FILEMAKER_TIMEOUT_SECONDS: float = Field(default=600.0)
    FILEMAKER_TOKEN_VALIDITY_MINUTES: int = Field(default=12)
    FILEMAKER_AUTH_MAX_RETRIES: int = Field(default=1)
    # Usuario con el que este sistema escribe en FileMaker (clausula anti-feedback)
    FILEMAKER_SERVICE_IDENTITY: str = Field(default="node-server")

    # Sync
    SYNC_INSERT_BATCH_SIZE: int = Field(default=1000)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/app.log")
    LOG_TIMEZONE: str = Field(default="America/Chicago")

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Si DATABASE_URL esta definida, la usa directamente.
        Si no, construye la URL desde los componentes individuales.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )

    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


def get_cors_origins(cors_string: str) -> List[str]:
    """
    Parsea la configuracion de CORS.
    Acepta "*" para todos los origenes o una lista JSON.
    """
    if cors_string == "*":
        return ["*"]
    try:
        return json.loads(cors_string)
    except json.JSONDecodeError:
        # Si no es JSON valido, retornar como lista simple
        return [origin.strip() for origin in cors_string.split(",")]


# Instancia global de configuracion
settings = Settings()
