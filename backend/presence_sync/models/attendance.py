"""
Modèles SQLAlchemy pour les séances de présence (agrégat parent + statuts enfants).

- attendance_records : une séance par (date, centre, niveau), suppression physique
- student_attendances : statut de chaque élève, supprimé en cascade avec la séance
"""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from presence_sync.database import Base
from presence_sync.models.enums import SyncState
from presence_sync.models.mixins import SyncColumnsMixin


class AttendanceRecord(SyncColumnsMixin, Base):
    """Séance de présence d'un centre et d'un niveau pour une date donnée."""
    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    office_uuid = Column(String(36), ForeignKey("offices.uuid"), nullable=False)
    level_uuid = Column(String(36), ForeignKey("levels.uuid"), nullable=False)

    __table_args__ = (
        UniqueConstraint("date", "office_uuid", "level_uuid", name="uq_attendance_session"),
        Index("idx_attendance_records_office_level", "office_uuid", "level_uuid"),
    )


class StudentAttendance(Base):
    """Statut d'un élève dans une séance (present, absent, excused)."""
    __tablename__ = "student_attendances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    attendance_record_uuid = Column(
        String(36), ForeignKey("attendance_records.uuid", ondelete="CASCADE"), nullable=False
    )
    student_uuid = Column(String(36), ForeignKey("students.uuid", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False)
    sync_state = Column(String(20), nullable=False, default=SyncState.PENDING_INSERT.value)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("attendance_record_uuid", "student_uuid", name="uq_student_attendance"),
    )
