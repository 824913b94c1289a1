"""
Modèle SQLAlchemy pour la table students.
Les références vers centre et niveau passent par l'UUID (les id autoincrémentés
locaux et distants divergent).
"""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String

from presence_sync.database import Base
from presence_sync.models.mixins import SyncColumnsMixin


class Student(SyncColumnsMixin, Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    birth_date = Column(Date, nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    office_uuid = Column(String(36), ForeignKey("offices.uuid"), nullable=False)
    level_uuid = Column(String(36), ForeignKey("levels.uuid"), nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_students_office_level", "office_uuid", "level_uuid"),
    )
