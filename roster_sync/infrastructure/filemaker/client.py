"""
Cliente asincrono de la FileMaker Data API (httpx).

Requisitos cubiertos:
- Todas las operaciones pasan por TokenManager.run_authenticated
- Parametros filtrados por builders explicitos (ver params.py)
- Validacion de forma: toda respuesta debe traer `response`
- Errores tipados con el mensaje remoto (`messages[0].message`)
- Sin reintentos de transporte en esta capa (solo refresh de token)
"""

from __future__ import annotations

import traceback
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union
from urllib.parse import quote

import httpx
from loguru import logger

from roster_sync.core.config import Settings
from roster_sync.shared.exceptions.filemaker import (
    FileMakerApiError,
    InvalidRemoteResponse,
    UnauthorizedError,
)

from . import params as fm_params
from .token_manager import FileMakerCredentials, TokenManager, mask_token
from .types import FindResult, QueryClause, RemoteRecord, UploadFile, clauses_to_wire

# Codigos de error de FileMaker relevantes
FM_NO_RECORDS_MATCH = "401"
FM_INVALID_TOKEN = "952"

# Para logs: cuerpos grandes (paginas de 2000 registros) se truncan
_LOG_BODY_LIMIT = 2000


def _truncate(value: Any) -> str:
    text = str(value)
    if len(text) > _LOG_BODY_LIMIT:
        return text[:_LOG_BODY_LIMIT] + "...(truncado)"
    return text


def _first_message(payload: Any) -> tuple[Optional[str], Optional[str]]:
    """Extrae (mensaje, codigo) del primer elemento de `messages`."""
    if not isinstance(payload, dict):
        return None, None
    messages = payload.get("messages") or []
    if not messages or not isinstance(messages[0], dict):
        return None, None
    first = messages[0]
    code = first.get("code")
    return first.get("message"), str(code) if code is not None else None


class FileMakerClient:
    """
    Cliente de la Data API. Dueño de su TokenManager (un token por instancia).

    Uso:
        async with FileMakerClient.from_settings(settings) as client:
            result = await client.find("hub", [QueryClause({"ID": "H1"})], {"limit": 1})
    """

    def __init__(
        self,
        credentials: FileMakerCredentials,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 600.0,
        verify_ssl: bool = False,
        token_validity_minutes: int = 12,
        auth_max_retries: int = 1,
        log_timezone: str = "America/Chicago",
        token_manager: Optional[TokenManager] = None,
    ) -> None:
        self._creds = credentials
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_s, verify=verify_ssl)
        self.token_manager = token_manager or TokenManager(
            credentials,
            http_client=self._http,
            validity_minutes=token_validity_minutes,
            max_retries=auth_max_retries,
            log_timezone=log_timezone,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "FileMakerClient":
        credentials = FileMakerCredentials(
            server=settings.FILEMAKER_SERVER,
            database=settings.FILEMAKER_DATABASE,
            username=settings.FILEMAKER_USERNAME,
            password=settings.FILEMAKER_PASSWORD,
            api_version=settings.FILEMAKER_API_VERSION,
        )
        return cls(
            credentials,
            timeout_s=settings.FILEMAKER_TIMEOUT_SECONDS,
            verify_ssl=settings.FILEMAKER_VERIFY_SSL,
            token_validity_minutes=settings.FILEMAKER_TOKEN_VALIDITY_MINUTES,
            auth_max_retries=settings.FILEMAKER_AUTH_MAX_RETRIES,
            log_timezone=settings.LOG_TIMEZONE,
            **kwargs,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "FileMakerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transporte
    # ------------------------------------------------------------------

    def _url(self, endpoint: str) -> str:
        return f"{self._creds.database_url}/{endpoint}" if endpoint else self._creds.database_url

    @staticmethod
    def _layout_path(layout: str, suffix: str = "") -> str:
        if not layout:
            raise ValueError("Layout name is required")
        return f"layouts/{quote(layout, safe='')}{suffix}"

    def _log_failure(
        self,
        operation: str,
        method: str,
        url: str,
        status: Optional[int],
        request_data: Any,
        response_data: Any,
        error: str,
    ) -> None:
        stack = "".join(traceback.format_stack(limit=10))
        logger.error(
            f"FileMaker API Error:\n"
            f"    Operation: {operation}\n"
            f"    URL: {url}\n"
            f"    Method: {method}\n"
            f"    Status: {status}\n"
            f"    Request Data: {_truncate(request_data) if request_data else 'No request data'}\n"
            f"    Response Data: {_truncate(response_data)}\n"
            f"    Error: {error}\n"
            f"    Stack: {stack}"
        )

    async def _request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        token: Optional[str],
        *,
        json: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, str]] = None,
        files: Optional[Mapping[str, Any]] = None,
        auth: Optional[tuple[str, str]] = None,
        allow_no_records: bool = False,
    ) -> dict[str, Any]:
        """
        Ejecuta el request y retorna el objeto anidado `response`.

        Raises:
            UnauthorizedError: HTTP 401 o codigo FileMaker 952
            FileMakerApiError: error de transporte o respuesta no exitosa
            InvalidRemoteResponse: respuesta sin `response`
        """
        url = self._url(endpoint)
        headers = {"Authorization": f"Bearer {token}"} if token else None
        logger.debug(
            f"Request a FileMaker [{operation}] {method} {url} "
            f"params={params or {}} body={_truncate(json) if json else '{}'}"
            + (f" token={mask_token(token)}" if token else "")
        )

        try:
            response = await self._http.request(
                method, url, headers=headers, json=json, params=params, files=files, auth=auth
            )
        except httpx.HTTPError as e:
            self._log_failure(operation, method, url, None, json or params, None, str(e))
            raise FileMakerApiError(operation, str(e)) from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success:
            message, code = _first_message(payload)
            message = message or response.reason_phrase or f"HTTP {response.status_code}"

            if allow_no_records and code == FM_NO_RECORDS_MATCH:
                return {"data": [], "dataInfo": {"foundCount": 0, "returnedCount": 0}}

            if response.status_code == 401 or code == FM_INVALID_TOKEN:
                logger.warning(f"FileMaker rechazo el token en '{operation}': {message}")
                raise UnauthorizedError(message)

            self._log_failure(operation, method, url, response.status_code, json or params, payload or response.text, message)
            raise FileMakerApiError(operation, message, http_status=response.status_code, fm_code=code)

        body = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(body, dict):
            self._log_failure(operation, method, url, response.status_code, json or params, payload, "Respuesta sin 'response'")
            raise InvalidRemoteResponse(operation)
        return body

    async def _authenticated(self, operation: str, method: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
        async def _call(token: str) -> dict[str, Any]:
            return await self._request(operation, method, endpoint, token, **kwargs)

        return await self.token_manager.run_authenticated(_call)

    # ------------------------------------------------------------------
    # Registros
    # ------------------------------------------------------------------

    async def find(
        self,
        layout: str,
        query: Sequence[QueryClause],
        options: Optional[Mapping[str, Any]] = None,
    ) -> FindResult:
        """
        POST layouts/{layout}/_find.

        `query` es una disyuncion de QueryClause; las clausulas con omit=True
        excluyen. "Sin resultados" (codigo 401 de FileMaker) se retorna como
        resultado vacio con found_count=0.
        """
        if query is None:
            raise ValueError("Query is required")
        body = {"query": clauses_to_wire(list(query)), **fm_params.build_find_params(options)}
        payload = await self._authenticated(
            "find", "POST", self._layout_path(layout, "/_find"), json=body, allow_no_records=True
        )
        return FindResult.from_payload(payload)

    async def list(self, layout: str, options: Optional[Mapping[str, Any]] = None) -> FindResult:
        """GET layouts/{layout}/records con _limit/_offset/_sort."""
        query = fm_params.build_list_params(options)
        payload = await self._authenticated("list", "GET", self._layout_path(layout, "/records"), params=query)
        return FindResult.from_payload(payload)

    async def get(
        self,
        layout: str,
        record_id: Union[str, int],
        options: Optional[Mapping[str, Any]] = None,
    ) -> RemoteRecord:
        if not record_id:
            raise ValueError("Record ID is required")
        query = fm_params.build_get_params(options)
        payload = await self._authenticated(
            "get", "GET", self._layout_path(layout, f"/records/{record_id}"), params=query
        )
        result = FindResult.from_payload(payload)
        if not result.data:
            raise InvalidRemoteResponse("get")
        return result.data[0]

    async def create(
        self,
        layout: str,
        data: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        POST layouts/{layout}/records. Retorna {recordId, modId}.
        Con options["merge"]=True retorna los datos de entrada + la respuesta.
        """
        if data is None or not isinstance(data, Mapping):
            raise ValueError("Valid data object is required")
        body = fm_params.build_create_body(data, options)
        payload = await self._authenticated("create", "POST", self._layout_path(layout, "/records"), json=body)
        if options and options.get("merge"):
            return {**data, **payload}
        return payload

    async def edit(
        self,
        layout: str,
        record_id: Union[str, int],
        data: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, Any]:
        """PATCH layouts/{layout}/records/{id}. Retorna {modId}."""
        if not record_id:
            raise ValueError("Record ID is required")
        if data is None or not isinstance(data, Mapping):
            raise ValueError("Valid data object is required")
        body = fm_params.build_edit_body(data, options)
        payload = await self._authenticated(
            "edit", "PATCH", self._layout_path(layout, f"/records/{record_id}"), json=body
        )
        if options and options.get("merge"):
            return {**data, "recordId": str(record_id), **payload}
        return payload

    async def delete(
        self,
        layout: str,
        record_id: Union[str, int],
        options: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, Any]:
        if not record_id:
            raise ValueError("Record ID is required")
        query = fm_params.build_delete_params(options)
        return await self._authenticated(
            "delete", "DELETE", self._layout_path(layout, f"/records/{record_id}"), params=query
        )

    async def upload(
        self,
        file: Union[str, Path, UploadFile],
        layout: str,
        container_field: str,
        record_id: Optional[Union[str, int]] = None,
        repetition: int = 1,
    ) -> dict[str, Any]:
        """
        Sube un archivo a un campo contenedor.
        Si no se indica record_id se crea un registro vacio y se usa ese.
        """
        if not container_field:
            raise ValueError("Container field name is required")
        if isinstance(file, UploadFile):
            upload = file
        else:
            path = Path(file)
            upload = UploadFile(name=path.name, content=path.read_bytes())

        if not record_id:
            created = await self.create(layout, {})
            record_id = created.get("recordId")

        endpoint = self._layout_path(
            layout, f"/records/{record_id}/containers/{quote(container_field, safe='')}/{repetition}"
        )
        payload = await self._authenticated(
            "upload",
            "POST",
            endpoint,
            files={"upload": (upload.name, upload.content, upload.content_type)},
        )
        return {"recordId": str(record_id), **payload}

    # ------------------------------------------------------------------
    # Scripts y globals
    # ------------------------------------------------------------------

    async def script(self, layout: str, script: str, param: Any = None) -> dict[str, Any]:
        """GET layouts/{layout}/script/{script}. Retorna {scriptResult, scriptError}."""
        if not script:
            raise ValueError("Script name is required")
        return await self._authenticated(
            "script",
            "GET",
            self._layout_path(layout, f"/script/{quote(script, safe='')}"),
            params=fm_params.build_script_params(param),
        )

    async def globals(self, data: Mapping[str, Any]) -> dict[str, Any]:
        if not data or not isinstance(data, Mapping):
            raise ValueError("Valid data object is required")
        return await self._authenticated("globals", "PATCH", "globals", json=fm_params.build_globals_body(data))

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def layouts(self) -> list[dict[str, Any]]:
        payload = await self._authenticated(
            "layouts", "GET", "layouts", params=fm_params.build_metadata_params("layouts")
        )
        return list(payload.get("layouts") or [])

    async def layout_names(self) -> list[str]:
        """Nombres de layouts, aplanando carpetas (`folderLayoutNames`)."""
        return flatten_layout_names(await self.layouts())

    async def scripts(self) -> list[dict[str, Any]]:
        payload = await self._authenticated(
            "scripts", "GET", "scripts", params=fm_params.build_metadata_params("scripts")
        )
        return list(payload.get("scripts") or [])

    async def product_info(self) -> dict[str, Any]:
        """GET productInfo (no requiere token)."""
        url = f"{self._creds.api_root}/productInfo"
        payload = await self._unauthenticated("productInfo", url)
        return dict(payload.get("productInfo") or {})

    async def databases(self) -> list[dict[str, Any]]:
        """GET databases con Basic auth (no usa token de sesion)."""
        url = f"{self._creds.api_root}/databases"
        payload = await self._unauthenticated(
            "databases", url, auth=(self._creds.username, self._creds.password)
        )
        return list(payload.get("databases") or [])

    async def _unauthenticated(
        self, operation: str, url: str, auth: Optional[tuple[str, str]] = None
    ) -> dict[str, Any]:
        try:
            response = await self._http.get(url, auth=auth)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self._log_failure(operation, "GET", url, None, None, None, str(e))
            raise FileMakerApiError(operation, str(e)) from e
        body = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(body, dict):
            raise InvalidRemoteResponse(operation)
        return body

    # ------------------------------------------------------------------
    # Sesion
    # ------------------------------------------------------------------

    async def login(self) -> str:
        return await self.token_manager.authenticate()

    async def logout(self) -> None:
        """DELETE sessions/{token}. Sin token cacheado no hace nada."""
        token = self.token_manager.token
        if not token:
            return
        try:
            await self._request("logout", "DELETE", f"sessions/{token}", None)
        finally:
            self.token_manager.invalidate()
        logger.info(f"Sesion FileMaker cerrada ({mask_token(token)})")


def flatten_layout_names(layouts: Sequence[Any]) -> list[str]:
    """
    Aplana el arbol de layouts de FileMaker.

    Las carpetas traen `isFolder: true` y `folderLayoutNames` (lista de
    layouts o de carpetas anidadas); las carpetas no cuentan como layout.
    """
    names: list[str] = []
    for entry in layouts or []:
        if isinstance(entry, str):
            names.append(entry)
            continue
        if not isinstance(entry, Mapping):
            continue
        children = entry.get("folderLayoutNames")
        if entry.get("isFolder") or isinstance(children, list):
            names.extend(flatten_layout_names(children or []))
        elif entry.get("name"):
            names.append(entry["name"])
    return names
