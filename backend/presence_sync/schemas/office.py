"""
Schémas Pydantic pour les centres (offices) et les niveaux (levels).
Les deux entités partagent la même forme : un nom unique parmi les lignes actives.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class NamedEntityCreate(BaseModel):
    name: str
    remote_id: Optional[int] = None  # Amorçage : ligne déjà connue de la base distante

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom ne peut pas être vide.")
        return v.strip()


class NamedEntityUpdate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom ne peut pas être vide.")
        return v.strip()


class NamedEntityResponse(BaseModel):
    id: int
    uuid: uuid.UUID
    name: str
    remote_id: Optional[int]
    sync_state: str
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


OfficeCreate = NamedEntityCreate
OfficeUpdate = NamedEntityUpdate
OfficeResponse = NamedEntityResponse
LevelCreate = NamedEntityCreate
LevelUpdate = NamedEntityUpdate
LevelResponse = NamedEntityResponse
