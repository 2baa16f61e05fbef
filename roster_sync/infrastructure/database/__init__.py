"""
Configuración de base de datos.

Importa todos los modelos para que se registren con Base
antes de crear las tablas.
"""
from roster_sync.infrastructure.database.models import (
    HubModel,
    SectionModel,
    PartnerSchoolModel,
    SectionPartnerSchoolModel,
    StudentModel,
    StudentEnrollModel,
)
