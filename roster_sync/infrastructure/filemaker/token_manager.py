"""
Gestor del token de sesion de la FileMaker Data API.

Reglas:
- Un solo token cacheado por instancia; las operaciones concurrentes lo comparten.
- Ventana deslizante: cada uso exitoso renueva `last_used`, y el token se
  considera valido mientras (ahora - last_used) < validez.
- Si la API rechaza el token (UnauthorizedError) se invalida, se reautentica
  una sola vez y se reintenta la operacion una sola vez.
- El refresh esta protegido con un asyncio.Lock: dos callers que detectan
  expiracion a la vez no autentican dos veces.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from loguru import logger

from roster_sync.shared.exceptions.filemaker import (
    AuthenticationError,
    ConfigurationError,
    FileMakerApiError,
    UnauthorizedError,
)
from roster_sync.shared.utils.datetime_utils import DateTimeUtils

T = TypeVar("T")

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class FileMakerCredentials:
    server: str
    database: str
    username: str
    password: str
    api_version: str = "vLatest"

    def missing(self) -> list[str]:
        names = {
            "FILEMAKER_SERVER": self.server,
            "FILEMAKER_DATABASE": self.database,
            "FILEMAKER_USERNAME": self.username,
            "FILEMAKER_PASSWORD": self.password,
        }
        return [name for name, value in names.items() if not value]

    @property
    def api_root(self) -> str:
        server = self.server.rstrip("/")
        if not server.startswith(("http://", "https://")):
            server = f"https://{server}"
        return f"{server}/fmi/data/{self.api_version}"

    @property
    def database_url(self) -> str:
        return f"{self.api_root}/databases/{self.database}"


def mask_token(token: str) -> str:
    """Solo prefijo y sufijo: el token completo nunca se escribe en logs."""
    if len(token) <= 15:
        return token[:2] + "..."
    return f"{token[:10]}...{token[-5:]}"


class TokenManager:
    def __init__(
        self,
        credentials: FileMakerCredentials,
        *,
        http_client: httpx.AsyncClient,
        validity_minutes: int = 12,
        max_retries: int = 1,
        log_timezone: str = "America/Chicago",
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self._creds = credentials
        self._http = http_client
        self._validity_minutes = validity_minutes
        self._max_retries = max(1, max_retries)
        self._log_timezone = log_timezone
        self._clock = clock or DateTimeUtils.now_utc
        self._sleep = sleep or asyncio.sleep
        self._token: Optional[str] = None
        self._last_used: Optional[datetime] = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> Optional[str]:
        return self._token

    def invalidate(self) -> None:
        self._token = None
        self._last_used = None

    def _is_token_valid(self) -> bool:
        if not self._token or not self._last_used:
            return False
        age_minutes = (self._clock() - self._last_used).total_seconds() / 60
        return age_minutes < self._validity_minutes

    def _log_token_status(self, action: str, token: str) -> None:
        now = self._clock()
        expires = DateTimeUtils.expiration_from(now, self._validity_minutes)
        logger.info(
            f"{action} token {mask_token(token)} que expira "
            f"({DateTimeUtils.format_log_time(expires, self._log_timezone)})"
        )

    async def get_valid_token(self) -> str:
        async with self._lock:
            if self._is_token_valid() and self._token:
                self._log_token_status("Reused", self._token)
                self._last_used = self._clock()
                return self._token

            logger.info("Token previo expirado o inexistente, solicitando uno nuevo...")
            return await self._authenticate()

    async def authenticate(self) -> str:
        """Fuerza una autenticacion nueva y cachea el token resultante."""
        async with self._lock:
            return await self._authenticate()

    async def refresh(self, stale_token: Optional[str]) -> str:
        """
        Reemplaza `stale_token`. Si otro caller ya lo reemplazo mientras se
        esperaba el lock, se reutiliza el token nuevo.
        """
        async with self._lock:
            if self._token and self._token != stale_token and self._is_token_valid():
                self._log_token_status("Reused", self._token)
                self._last_used = self._clock()
                return self._token
            self.invalidate()
            return await self._authenticate()

    async def _authenticate(self) -> str:
        missing = self._creds.missing()
        if missing:
            raise ConfigurationError(missing)

        url = f"{self._creds.database_url}/sessions"
        last_error: Optional[Exception] = None

        for attempt in range(1, self._max_retries + 1):
            try:
                response = await self._http.post(
                    url,
                    json={},
                    auth=(self._creds.username, self._creds.password),
                )
                response.raise_for_status()
                token = ((response.json() or {}).get("response") or {}).get("token")
                if not token:
                    raise ValueError("Token no presente en la respuesta de FileMaker")

                self._token = token
                self._last_used = self._clock()
                self._log_token_status("Got new", token)
                return token
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                status = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
                body = e.response.text if isinstance(e, httpx.HTTPStatusError) else None
                logger.error(
                    f"Autenticacion fallida (intento {attempt}/{self._max_retries}): {e} | "
                    f"status={status} url={url} method=POST response={body}"
                )
                if attempt < self._max_retries:
                    await self._sleep(2 ** attempt)

        raise AuthenticationError(str(last_error), attempts=self._max_retries) from last_error

    async def run_authenticated(self, operation: Callable[[str], Awaitable[T]]) -> T:
        """
        Ejecuta `operation(token)` con un token valido.

        - UnauthorizedError: invalida, reautentica una vez y reintenta una vez.
          Un segundo rechazo se propaga.
        - FileMakerApiError / errores de transporte: reintentos acotados por
          max_retries con backoff 2**intento. Con el default (1) no hay reintento.
        """
        if not callable(operation):
            raise TypeError("Se esperaba una funcion de request valida")

        for attempt in range(1, self._max_retries + 1):
            token = await self.get_valid_token()
            try:
                try:
                    return await operation(token)
                except UnauthorizedError:
                    logger.warning(f"Token {mask_token(token)} rechazado por FileMaker, reautenticando...")
                    new_token = await self.refresh(token)
                    return await operation(new_token)
            except (FileMakerApiError, httpx.HTTPError) as e:
                if attempt >= self._max_retries:
                    raise
                logger.warning(
                    f"Request a FileMaker fallo (intento {attempt}/{self._max_retries}): {e}. Reintentando..."
                )
                await self._sleep(2 ** attempt)

        raise RuntimeError("Codigo inalcanzable en run_authenticated")
