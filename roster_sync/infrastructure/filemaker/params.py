"""
Builders de parametros por operacion de la Data API.

Cada operacion declara explicitamente que parametros admite. Un parametro
fuera de la lista levanta InvalidParameterError: un nombre mal escrito no se
descarta en silencio ni llega al wire.

Convenciones de FileMaker que se resuelven aqui (y no en el caller):
- En el body JSON (find) se usan `limit`, `offset`, `sort`.
- En query string (get/list) los mismos se llaman `_limit`, `_offset`, `_sort`.
- Portales: `portals=[{"name": ..., "limit": ..., "offset": ...}]` se expande a
  `portal`, `limit.<name>`/`offset.<name>` (o `_limit.<name>` en query string).
- Scripts: `scripts=[{"name": ..., "param": ...}]` se expande a `script` y
  `script.param` (params no-string se serializan a JSON).
- Los valores numericos se envian como string.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, Optional

from roster_sync.shared.exceptions.filemaker import InvalidParameterError


SCRIPT_KEYS: tuple[str, ...] = (
    "script",
    "script.param",
    "script.prerequest",
    "script.prerequest.param",
    "script.presort",
    "script.presort.param",
)

FIND_KEYS: tuple[str, ...] = ("limit", "offset", "sort", "portal", "layout.response", *SCRIPT_KEYS)
FIND_PREFIXES: tuple[str, ...] = ("limit.", "offset.")

RECORD_QUERY_KEYS: tuple[str, ...] = ("portal", "layout.response", *SCRIPT_KEYS)
LIST_KEYS: tuple[str, ...] = ("_limit", "_offset", "_sort", *RECORD_QUERY_KEYS)
QUERY_PREFIXES: tuple[str, ...] = ("_limit.", "_offset.")

CREATE_KEYS: tuple[str, ...] = ("portalData", *SCRIPT_KEYS)
EDIT_KEYS: tuple[str, ...] = ("portalData", "modId", *SCRIPT_KEYS)
DELETE_KEYS: tuple[str, ...] = SCRIPT_KEYS

# Claves del lado cliente que nunca viajan al servidor
CLIENT_OPTIONS: tuple[str, ...] = ("merge",)


def convert_portals(portals: Optional[Iterable[Mapping[str, Any]]], *, query_string: bool = False) -> dict[str, Any]:
    """Expande la lista de portales a `portal` + limit/offset por portal."""
    if not portals:
        return {}
    prefix = "_" if query_string else ""
    names: list[str] = []
    converted: dict[str, Any] = {}
    for portal in portals:
        name = portal.get("name")
        if not name:
            continue
        names.append(name)
        for key, value in portal.items():
            if key == "name":
                continue
            if key in ("limit", "offset"):
                converted[f"{prefix}{key}.{name}"] = value
            else:
                converted[key] = value
    return {"portal": names, **converted}


def convert_scripts(scripts: Optional[Iterable[Mapping[str, Any]]]) -> dict[str, Any]:
    """
    Expande `scripts=[{name, param}]` a `script` / `script.param`.

    FileMaker solo admite un script por fase; si llegan varios gana el ultimo.
    """
    if not scripts:
        return {}
    converted: dict[str, Any] = {}
    for script in scripts:
        name = script.get("name")
        if not name:
            continue
        converted["script"] = name
        if script.get("param") is not None:
            param = script["param"]
            converted["script.param"] = param if isinstance(param, str) else json.dumps(param)
    return converted


def stringify_numbers(params: Mapping[str, Any]) -> dict[str, Any]:
    return {
        key: str(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else value
        for key, value in params.items()
    }


def _expand(options: Optional[Mapping[str, Any]], *, query_string: bool) -> dict[str, Any]:
    options = dict(options or {})
    for key in CLIENT_OPTIONS:
        options.pop(key, None)
    portals = options.pop("portals", None)
    scripts = options.pop("scripts", None)
    return {**convert_portals(portals, query_string=query_string), **convert_scripts(scripts), **options}


def _allow(
    operation: str,
    params: Mapping[str, Any],
    allowed: Iterable[str],
    prefixes: Iterable[str] = (),
) -> dict[str, Any]:
    allowed = set(allowed)
    prefixes = tuple(prefixes)
    rejected = [k for k in params if k not in allowed and not k.startswith(prefixes)]
    if rejected:
        raise InvalidParameterError(operation, rejected)
    return {k: v for k, v in params.items() if v is not None}


def _encode_query(params: Mapping[str, Any]) -> dict[str, str]:
    """Query string: listas/dicts como JSON, numeros como string."""
    encoded: dict[str, str] = {}
    for key, value in stringify_numbers(params).items():
        encoded[key] = json.dumps(value) if isinstance(value, (list, dict)) else str(value)
    return encoded


def build_find_params(options: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
    """Parametros del body de `_find` (sin el `query`)."""
    params = _allow("find", _expand(options, query_string=False), FIND_KEYS, FIND_PREFIXES)
    return stringify_numbers(params)


def build_list_params(options: Optional[Mapping[str, Any]] = None) -> dict[str, str]:
    """Query string para listar registros de un layout."""
    expanded = _expand(options, query_string=True)
    for key in ("limit", "offset", "sort"):
        if key in expanded:
            expanded[f"_{key}"] = expanded.pop(key)
    return _encode_query(_allow("list", expanded, LIST_KEYS, QUERY_PREFIXES))


def build_get_params(options: Optional[Mapping[str, Any]] = None) -> dict[str, str]:
    """Query string para obtener un registro por recordId."""
    params = _allow("get", _expand(options, query_string=True), RECORD_QUERY_KEYS, QUERY_PREFIXES)
    return _encode_query(params)


def _record_body(data: Mapping[str, Any]) -> dict[str, Any]:
    if "fieldData" in data or "portalData" in data:
        return dict(data)
    return {"fieldData": dict(data)}


def build_create_body(data: Mapping[str, Any], options: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
    params = _allow("create", _expand(options, query_string=False), CREATE_KEYS)
    return {**_record_body(data), **stringify_numbers(params)}


def build_edit_body(data: Mapping[str, Any], options: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
    params = _allow("edit", _expand(options, query_string=False), EDIT_KEYS)
    return {**_record_body(data), **stringify_numbers(params)}


def build_delete_params(options: Optional[Mapping[str, Any]] = None) -> dict[str, str]:
    params = _allow("delete", _expand(options, query_string=True), DELETE_KEYS)
    return _encode_query(params)


def build_globals_body(data: Mapping[str, Any]) -> dict[str, Any]:
    return {"globalFields": dict(data)}


def build_script_params(param: Any = None) -> dict[str, str]:
    if param is None:
        return {}
    return {"script.param": param if isinstance(param, str) else json.dumps(param)}


def build_metadata_params(operation: str, options: Optional[Mapping[str, Any]] = None) -> dict[str, str]:
    """layouts/scripts/databases no admiten parametros."""
    return _encode_query(_allow(operation, _expand(options, query_string=True), ()))
