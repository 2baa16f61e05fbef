"""
Excepciones de integracion con la FileMaker Data API.

Todas heredan de FileMakerError para que los orquestadores puedan capturar
fallos remotos sin confundirlos con errores locales de persistencia.
"""
from typing import Any, Dict, List, Optional

from roster_sync.shared.exceptions.base import AppException


class FileMakerError(AppException):
    """Excepcion base para errores de la Data API."""

    def __init__(
        self,
        message: str,
        error_code: str = "FILEMAKER_ERROR",
        status_code: int = 502,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details=details,
        )


class ConfigurationError(FileMakerError):
    """Faltan credenciales o datos de conexion. Fatal, no se reintenta."""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            message=f"Faltan variables de entorno obligatorias de FileMaker: {', '.join(self.missing)}",
            error_code="FILEMAKER_CONFIGURATION_ERROR",
            status_code=500,
            details={"missing": self.missing},
        )


class AuthenticationError(FileMakerError):
    """No se pudo obtener un token de sesion tras los reintentos configurados."""

    def __init__(self, message: str, attempts: int = 1):
        self.attempts = attempts
        super().__init__(
            message=f"Fallo la autenticacion tras {attempts} intento(s): {message}",
            error_code="FILEMAKER_AUTHENTICATION_ERROR",
            details={"attempts": attempts},
        )


class UnauthorizedError(FileMakerError):
    """La Data API rechazo el token (HTTP 401 o codigo 952)."""

    def __init__(self, message: str = "Token de FileMaker rechazado"):
        super().__init__(
            message=message,
            error_code="FILEMAKER_UNAUTHORIZED",
            status_code=401,
        )


class InvalidRemoteResponse(FileMakerError):
    """La respuesta no contiene el objeto anidado `response`."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            message=f"Respuesta invalida del servidor FileMaker en '{operation}'",
            error_code="FILEMAKER_INVALID_RESPONSE",
            details={"operation": operation},
        )


class LayoutNotFoundError(FileMakerError):
    """El layout consultado no existe en la base de datos FileMaker."""

    def __init__(self, layout: str, available: List[str]):
        self.layout = layout
        self.available = list(available)
        super().__init__(
            message=(
                f"El layout '{layout}' no existe en la base de datos FileMaker. "
                f"Layouts disponibles: {', '.join(self.available) or '(ninguno)'}"
            ),
            error_code="FILEMAKER_LAYOUT_NOT_FOUND",
            status_code=500,
            details={"layout": layout, "available": self.available},
        )


class InvalidParameterError(FileMakerError):
    """Se paso un parametro que la operacion no admite."""

    def __init__(self, operation: str, rejected: List[str]):
        self.operation = operation
        self.rejected = sorted(rejected)
        super().__init__(
            message=f"Parametros no permitidos para '{operation}': {', '.join(self.rejected)}",
            error_code="FILEMAKER_INVALID_PARAMETER",
            status_code=400,
            details={"operation": operation, "rejected": self.rejected},
        )


class FileMakerApiError(FileMakerError):
    """Error de transporte o respuesta no exitosa de la Data API."""

    def __init__(
        self,
        operation: str,
        message: str,
        http_status: Optional[int] = None,
        fm_code: Optional[str] = None,
    ):
        self.operation = operation
        self.http_status = http_status
        self.fm_code = fm_code
        super().__init__(
            message=f"FileMaker {operation} failed: {message}",
            error_code="FILEMAKER_API_ERROR",
            details={"operation": operation, "http_status": http_status, "fm_code": fm_code},
        )
