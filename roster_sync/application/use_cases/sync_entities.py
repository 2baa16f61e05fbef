"""
Configuracion de sincronizacion por entidad.

Cada entidad define su layout en FileMaker, los campos usados para el filtro
por fecha y para la clausula anti-feedback, el tamaño de pagina y el modelo
local destino.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Type

from roster_sync.infrastructure.database.models import (
    HubModel,
    PartnerSchoolModel,
    SectionModel,
    SectionPartnerSchoolModel,
    StudentEnrollModel,
    StudentModel,
)
from roster_sync.infrastructure.database.session import Base
from roster_sync.shared.exceptions.sync import UnknownSyncEntityError


@dataclass(frozen=True)
class EntitySyncConfig:
    name: str
    label: str
    layout: str
    model: Type[Base]
    modified_field: str = "zzModifiedTS"
    modified_by_field: str = "ModifiedBy"
    chunk_size: int = 1000


ENTITY_SYNC_CONFIGS: Dict[str, EntitySyncConfig] = {
    config.name: config
    for config in (
        EntitySyncConfig(
            name="hubs",
            label="hubs",
            layout="hub",
            model=HubModel,
            modified_by_field="zzModifiedBy",
            chunk_size=2000,
        ),
        EntitySyncConfig(
            name="sections",
            label="sections",
            layout="sections",
            model=SectionModel,
        ),
        EntitySyncConfig(
            name="partner-schools",
            label="partner schools",
            layout="partnerSchool",
            model=PartnerSchoolModel,
        ),
        EntitySyncConfig(
            name="section-partner-schools",
            label="section partner schools",
            layout="sectionPartnerSchool",
            model=SectionPartnerSchoolModel,
        ),
        EntitySyncConfig(
            name="student-enrolled",
            label="student enrollments",
            layout="studentEnroll",
            model=StudentEnrollModel,
            chunk_size=2000,
        ),
        EntitySyncConfig(
            name="student",
            label="students",
            layout="student",
            model=StudentModel,
        ),
    )
}


def get_entity_config(name: str) -> EntitySyncConfig:
    config = ENTITY_SYNC_CONFIGS.get(name)
    if config is None:
        raise UnknownSyncEntityError(name)
    return config


def list_entity_names() -> List[str]:
    return list(ENTITY_SYNC_CONFIGS)
