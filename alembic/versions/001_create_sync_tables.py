"""Crear tablas de entidades sincronizadas desde FileMaker

Revision ID: 001_sync_tables
Revises:
Create Date: 2026-09-28

Tablas: hubs, sections, partner_schools, section_partner_schools, students,
student_enrollments. Todas llevan `filemaker_record_id` unico como clave de
reconciliacion del upsert.
"""
from typing import List, Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '001_sync_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _text(name: str, length: int = 255) -> sa.Column:
    return sa.Column(name, sa.String(length=length), nullable=True)


def _number(name: str) -> sa.Column:
    return sa.Column(name, sa.Float(), nullable=True)


def _audit_columns() -> List[sa.Column]:
    return [
        _text('CreationTimestamp', 32),
        _text('CreatedBy'),
        _text('ModificationTimestamp', 32),
        _text('ModifiedBy'),
    ]


def _sync_columns() -> List[sa.Column]:
    return [
        sa.Column('local_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('filemaker_record_id', sa.String(length=64), nullable=False),
        sa.Column('filemaker_mod_id', sa.String(length=64), nullable=True),
        sa.Column('local_created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('local_modified_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('local_edited', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.PrimaryKeyConstraint('local_id'),
    ]


# tabla -> (columnas de negocio, columnas indexadas)
TABLES = {
    'hubs': (
        lambda: [
            _text('ID', 64), *_audit_columns(),
            _text('umbrella'), _text('course'), _text('name'), _text('classModel'),
            _text('date_start', 32), _text('date_end', 32), _text('ModifiedByWeb'),
        ],
        ['ID'],
    ),
    'sections': (
        lambda: [
            _text('ID', 64), *_audit_columns(),
            _text('id_hub', 64), _text('daysWeek'), _text('time_start', 32), _text('time_end', 32),
            _number('capacity_target'), _number('capacity_overPercent'), _number('capacity_max'),
            _number('enrolled_c'), _number('capacity_remaining_target_c'), _number('capacity_remaining_max_c'),
            _text('ModifiedByWeb'),
        ],
        ['ID', 'id_hub'],
    ),
    'partner_schools': (
        lambda: [
            _text('ID', 64), _text('xx_email_auth_user'), _text('schoolName'),
            *_audit_columns(), _text('ModifiedByWeb'),
        ],
        ['ID'],
    ),
    'section_partner_schools': (
        lambda: [
            _text('ID', 64), *_audit_columns(),
            _text('id_section', 64), _text('id_partnerSchool', 64),
            _number('numEnrolled_c'), _number('num_roster_c'),
            _text('flag_removeWeb', 32), _text('flag_addWeb', 32), _text('ModifiedByWeb'),
        ],
        ['ID', 'id_section', 'id_partnerSchool'],
    ),
    'students': (
        lambda: [
            _text('ID', 64), _text('id_parsch', 64),
            _text('name_first'), _text('name_last'), _text('name_full', 512), _text('CPSID', 64),
            _text('score1', 64), _text('score2', 64), _text('GPA', 32), _text('grade_current', 32),
            _text('flag_alg_complete', 32), _text('attendance', 32),
            _text('GPA_waiver_flag', 32), _text('attendance_waiver_flag', 32),
            _text('act', 32), _text('sat_math', 32), _text('sat_eng', 32), _text('alex', 32), _text('rtw', 32),
            _number('mg_alg_school_elig'), _number('mg_geo_school_elig'),
            _text('mg_span_school_elig', 32), _text('mg_eng_school_elig', 32),
            *_audit_columns(), _text('ModifiedByWeb'), _text('flag_addWeb', 32),
        ],
        ['ID', 'id_parsch', 'CPSID'],
    ),
    'student_enrollments': (
        lambda: [
            _text('ID', 64), *_audit_columns(),
            _text('hub', 64), _text('partnerSchool', 64), _text('section', 64), _text('student', 64),
            _text('status_roster', 64), _text('removeReason'), _text('removeReason_other'),
            sa.Column('removeReason_additionalContext', sa.Text(), nullable=True),
            _number('flag_enrolled'), _text('flag_removeWeb', 32), _text('flag_addWeb', 32),
            _text('temp_firstName'), _text('temp_lastName'), _text('temp_CPSID', 64),
            _text('ModifiedByWeb'), _text('id_sectionMoveWeb', 64), _text('flag_moveWeb', 32),
        ],
        ['ID', 'hub', 'partnerSchool', 'section', 'student'],
    ),
}


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table, (columns, indexed) in TABLES.items():
        if inspector.has_table(table):
            continue
        op.create_table(table, *_sync_columns(), *columns())
        op.create_index(op.f(f'ix_{table}_local_id'), table, ['local_id'], unique=False)
        op.create_index(op.f(f'ix_{table}_filemaker_record_id'), table, ['filemaker_record_id'], unique=True)
        for column in indexed:
            op.create_index(op.f(f'ix_{table}_{column}'), table, [column], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table in reversed(list(TABLES)):
        if inspector.has_table(table):
            op.drop_table(table)
