"""
Tipos puros para la Data API de FileMaker.

Se mantienen libres de I/O para poder testearlos facilmente. El formato de
wire (listas de dicts con la clave especial `omit`) solo aparece en
`QueryClause.to_wire()`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


Scalar = Any


@dataclass(frozen=True)
class QueryClause:
    """
    Una clausula del find.

    - fields: restricciones campo=valor (conjuncion dentro de la clausula)
    - omit: si True, la clausula excluye los registros que la cumplen

    Una lista de clausulas es una disyuncion: FileMaker procesa las
    clausulas de busqueda y luego aplica las de omision.
    """

    fields: Mapping[str, Scalar]
    omit: bool = False

    def to_wire(self) -> dict[str, str]:
        wire = {name: to_wire_string(value) for name, value in self.fields.items()}
        if self.omit:
            wire["omit"] = "true"
        return wire


def to_wire_string(value: Any) -> str:
    """La Data API espera strings en los criterios de busqueda."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def clauses_to_wire(clauses: list[QueryClause]) -> list[dict[str, str]]:
    # FileMaker exige al menos una clausula; un find vacio equivale a "todos"
    if not clauses:
        return [{}]
    return [c.to_wire() for c in clauses]


@dataclass(frozen=True)
class RemoteRecord:
    """Envelope de un registro FileMaker."""

    field_data: dict[str, Scalar]
    record_id: str
    mod_id: str
    portal_data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RemoteRecord":
        return cls(
            field_data=dict(payload.get("fieldData") or {}),
            record_id=str(payload.get("recordId", "")),
            mod_id=str(payload.get("modId", "")),
            portal_data=dict(payload.get("portalData") or {}),
        )


@dataclass(frozen=True)
class DataInfo:
    found_count: int = 0
    returned_count: int = 0
    total_record_count: int = 0
    database: Optional[str] = None
    layout: Optional[str] = None
    table: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> "DataInfo":
        payload = payload or {}
        return cls(
            found_count=int(payload.get("foundCount") or 0),
            returned_count=int(payload.get("returnedCount") or 0),
            total_record_count=int(payload.get("totalRecordCount") or 0),
            database=payload.get("database"),
            layout=payload.get("layout"),
            table=payload.get("table"),
        )


@dataclass(frozen=True)
class FindResult:
    """Resultado de find/list: registros + dataInfo."""

    data: list[RemoteRecord]
    data_info: DataInfo

    @classmethod
    def empty(cls) -> "FindResult":
        return cls(data=[], data_info=DataInfo())

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "FindResult":
        return cls(
            data=[RemoteRecord.from_payload(r) for r in payload.get("data") or []],
            data_info=DataInfo.from_payload(payload.get("dataInfo")),
        )


@dataclass(frozen=True)
class UploadFile:
    """Archivo en memoria para subir a un campo contenedor."""

    name: str
    content: bytes
    content_type: str = "application/octet-stream"
