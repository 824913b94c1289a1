"""
Schémas Pydantic pour les élèves.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class StudentCreate(BaseModel):
    """Schéma de création d'un élève (POST /students)."""
    name: str
    office_uuid: uuid.UUID
    level_uuid: uuid.UUID
    birth_date: Optional[date] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    remote_id: Optional[int] = None

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom de l'élève ne peut pas être vide.")
        return v.strip()


class StudentUpdate(BaseModel):
    """Schéma de mise à jour d'un élève (PUT /students/{id}) : instantané complet des champs."""
    name: str
    office_uuid: uuid.UUID
    level_uuid: uuid.UUID
    birth_date: Optional[date] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom de l'élève ne peut pas être vide.")
        return v.strip()


class StudentResponse(BaseModel):
    """Schéma de réponse pour un élève (GET /students), avec noms du centre et du niveau."""
    id: int
    uuid: uuid.UUID
    name: str
    birth_date: Optional[date]
    phone: Optional[str]
    address: Optional[str]
    office_uuid: uuid.UUID
    level_uuid: uuid.UUID
    office_name: Optional[str] = None
    level_name: Optional[str] = None
    remote_id: Optional[int]
    sync_state: str
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}
