"""
Modelos de base de datos (ORM).

Las columnas de negocio conservan los nombres de campo de FileMaker para que
el mapeo registro remoto -> fila local sea directo. Cada tabla agrega la
procedencia (`filemaker_record_id`, `filemaker_mod_id`) y timestamps locales.
"""
from typing import FrozenSet, Type

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func

from roster_sync.infrastructure.database.session import Base


class FileMakerSyncMixin:
    """
    Columnas comunes a toda entidad sincronizada desde FileMaker.

    `filemaker_record_id` es la unica clave de reconciliacion: las claves de
    negocio (`ID`, `CPSID`...) pueden venir vacias o repetidas.
    """

    # En la base se llama local_id: SQLite no distingue `id` del campo de negocio `ID`
    id = Column("local_id", Integer, primary_key=True, index=True, autoincrement=True)
    filemaker_record_id = Column(String(64), nullable=False, unique=True, index=True)
    filemaker_mod_id = Column(String(64), nullable=True)
    local_created_at = Column(DateTime(timezone=True), server_default=func.now())
    local_modified_at = Column(DateTime(timezone=True), server_default=func.now())
    local_edited = Column(Boolean, nullable=False, default=False)


# Columnas que no vienen de fieldData
BOOKKEEPING_COLUMNS: FrozenSet[str] = frozenset({
    "local_id",
    "filemaker_record_id",
    "filemaker_mod_id",
    "local_created_at",
    "local_modified_at",
    "local_edited",
})


class HubModel(FileMakerSyncMixin, Base):
    __tablename__ = "hubs"

    ID = Column(String(64), nullable=True, index=True)
    CreationTimestamp = Column(String(32), nullable=True)
    CreatedBy = Column(String(255), nullable=True)
    ModificationTimestamp = Column(String(32), nullable=True)
    ModifiedBy = Column(String(255), nullable=True)
    umbrella = Column(String(255), nullable=True)
    course = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    classModel = Column(String(255), nullable=True)
    date_start = Column(String(32), nullable=True)
    date_end = Column(String(32), nullable=True)
    ModifiedByWeb = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<Hub(id={self.id}, ID={self.ID}, name={self.name})>"


class SectionModel(FileMakerSyncMixin, Base):
    __tablename__ = "sections"

    ID = Column(String(64), nullable=True, index=True)
    CreationTimestamp = Column(String(32), nullable=True)
    CreatedBy = Column(String(255), nullable=True)
    ModificationTimestamp = Column(String(32), nullable=True)
    ModifiedBy = Column(String(255), nullable=True)
    id_hub = Column(String(64), nullable=True, index=True)
    daysWeek = Column(String(255), nullable=True)
    time_start = Column(String(32), nullable=True)
    time_end = Column(String(32), nullable=True)
    capacity_target = Column(Float, nullable=True)
    capacity_overPercent = Column(Float, nullable=True)
    capacity_max = Column(Float, nullable=True)
    enrolled_c = Column(Float, nullable=True)
    capacity_remaining_target_c = Column(Float, nullable=True)
    capacity_remaining_max_c = Column(Float, nullable=True)
    ModifiedByWeb = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<Section(id={self.id}, ID={self.ID}, hub={self.id_hub})>"


class PartnerSchoolModel(FileMakerSyncMixin, Base):
    __tablename__ = "partner_schools"

    ID = Column(String(64), nullable=True, index=True)
    xx_email_auth_user = Column(String(255), nullable=True)
    schoolName = Column(String(255), nullable=True)
    CreationTimestamp = Column(String(32), nullable=True)
    CreatedBy = Column(String(255), nullable=True)
    ModificationTimestamp = Column(String(32), nullable=True)
    ModifiedBy = Column(String(255), nullable=True)
    ModifiedByWeb = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<PartnerSchool(id={self.id}, ID={self.ID}, name={self.schoolName})>"


class SectionPartnerSchoolModel(FileMakerSyncMixin, Base):
    """Relacion seccion <-> escuela asociada."""

    __tablename__ = "section_partner_schools"

    ID = Column(String(64), nullable=True, index=True)
    CreationTimestamp = Column(String(32), nullable=True)
    CreatedBy = Column(String(255), nullable=True)
    ModificationTimestamp = Column(String(32), nullable=True)
    ModifiedBy = Column(String(255), nullable=True)
    id_section = Column(String(64), nullable=True, index=True)
    id_partnerSchool = Column(String(64), nullable=True, index=True)
    numEnrolled_c = Column(Float, nullable=True)
    num_roster_c = Column(Float, nullable=True)
    flag_removeWeb = Column(String(32), nullable=True)
    flag_addWeb = Column(String(32), nullable=True)
    ModifiedByWeb = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<SectionPartnerSchool(id={self.id}, section={self.id_section}, school={self.id_partnerSchool})>"


class StudentModel(FileMakerSyncMixin, Base):
    __tablename__ = "students"

    ID = Column(String(64), nullable=True, index=True)
    id_parsch = Column(String(64), nullable=True, index=True)
    name_first = Column(String(255), nullable=True)
    name_last = Column(String(255), nullable=True)
    name_full = Column(String(512), nullable=True)
    CPSID = Column(String(64), nullable=True, index=True)
    score1 = Column(String(64), nullable=True)
    score2 = Column(String(64), nullable=True)
    GPA = Column(String(32), nullable=True)
    grade_current = Column(String(32), nullable=True)
    flag_alg_complete = Column(String(32), nullable=True)
    attendance = Column(String(32), nullable=True)
    GPA_waiver_flag = Column(String(32), nullable=True)
    attendance_waiver_flag = Column(String(32), nullable=True)
    act = Column(String(32), nullable=True)
    sat_math = Column(String(32), nullable=True)
    sat_eng = Column(String(32), nullable=True)
    alex = Column(String(32), nullable=True)
    rtw = Column(String(32), nullable=True)
    mg_alg_school_elig = Column(Float, nullable=True)
    mg_geo_school_elig = Column(Float, nullable=True)
    mg_span_school_elig = Column(String(32), nullable=True)
    mg_eng_school_elig = Column(String(32), nullable=True)
    CreationTimestamp = Column(String(32), nullable=True)
    CreatedBy = Column(String(255), nullable=True)
    ModificationTimestamp = Column(String(32), nullable=True)
    ModifiedBy = Column(String(255), nullable=True)
    ModifiedByWeb = Column(String(255), nullable=True)
    flag_addWeb = Column(String(32), nullable=True)

    def __repr__(self):
        return f"<Student(id={self.id}, ID={self.ID}, name={self.name_full})>"


class StudentEnrollModel(FileMakerSyncMixin, Base):
    """Inscripcion de un estudiante en una seccion (roster)."""

    __tablename__ = "student_enrollments"

    ID = Column(String(64), nullable=True, index=True)
    CreationTimestamp = Column(String(32), nullable=True)
    CreatedBy = Column(String(255), nullable=True)
    ModificationTimestamp = Column(String(32), nullable=True)
    ModifiedBy = Column(String(255), nullable=True)
    hub = Column(String(64), nullable=True, index=True)
    partnerSchool = Column(String(64), nullable=True, index=True)
    section = Column(String(64), nullable=True, index=True)
    student = Column(String(64), nullable=True, index=True)
    status_roster = Column(String(64), nullable=True)
    removeReason = Column(String(255), nullable=True)
    removeReason_other = Column(String(255), nullable=True)
    removeReason_additionalContext = Column(Text, nullable=True)
    flag_enrolled = Column(Float, nullable=True)
    flag_removeWeb = Column(String(32), nullable=True)
    flag_addWeb = Column(String(32), nullable=True)
    temp_firstName = Column(String(255), nullable=True)
    temp_lastName = Column(String(255), nullable=True)
    temp_CPSID = Column(String(64), nullable=True)
    ModifiedByWeb = Column(String(255), nullable=True)
    id_sectionMoveWeb = Column(String(64), nullable=True)
    flag_moveWeb = Column(String(32), nullable=True)

    def __repr__(self):
        return f"<StudentEnroll(id={self.id}, student={self.student}, section={self.section})>"


def field_columns(model: Type[Base]) -> FrozenSet[str]:
    """Columnas que se llenan desde `fieldData` (todas menos las de control)."""
    return frozenset(c.name for c in model.__table__.columns if c.name not in BOOKKEEPING_COLUMNS)


def numeric_columns(model: Type[Base]) -> FrozenSet[str]:
    """Columnas numericas: FileMaker envia "" cuando el campo esta vacio."""
    return frozenset(
        c.name
        for c in model.__table__.columns
        if c.name not in BOOKKEEPING_COLUMNS and isinstance(c.type, (Integer, Float))
    )
