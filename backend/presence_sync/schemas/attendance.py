"""
Schémas Pydantic pour les séances de présence et les statuts par élève.
"""

import uuid
import datetime as dt
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from presence_sync.models.enums import AttendanceStatus

VALID_STATUSES = {s.value for s in AttendanceStatus}


class StudentStatusItem(BaseModel):
    student_uuid: uuid.UUID
    status: str

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in VALID_STATUSES:
            raise ValueError(f"Statut invalide. Valeurs acceptées : {sorted(VALID_STATUSES)}")
        return v


class AttendanceSave(BaseModel):
    """
    Corps de requête pour enregistrer une séance.
    La liste des statuts est toujours complète : elle remplace intégralement la précédente.
    """
    date: dt.date
    office_uuid: uuid.UUID
    level_uuid: uuid.UUID
    statuses: List[StudentStatusItem]

    @field_validator("statuses")
    @classmethod
    def no_duplicate_student(cls, v: List[StudentStatusItem]) -> List[StudentStatusItem]:
        seen = set()
        for item in v:
            if item.student_uuid in seen:
                raise ValueError(f"Élève présent deux fois dans la séance : {item.student_uuid}")
            seen.add(item.student_uuid)
        return v


class StudentAttendanceResponse(BaseModel):
    student_uuid: uuid.UUID
    status: str
    sync_state: str
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class AttendanceRecordResponse(BaseModel):
    id: int
    uuid: uuid.UUID
    date: dt.date
    office_uuid: uuid.UUID
    level_uuid: uuid.UUID
    office_name: Optional[str] = None
    level_name: Optional[str] = None
    remote_id: Optional[int]
    sync_state: str
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class AttendanceRecordDetail(AttendanceRecordResponse):
    statuses: List[StudentAttendanceResponse]
