"""
Dépôts des centres (offices) et des niveaux (levels).
Clé naturelle : le nom, unique parmi les lignes non supprimées.
"""

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from presence_sync.models.enums import EntityKind
from presence_sync.models.office import Level, Office
from presence_sync.schemas.sync import LevelPayload, OfficePayload
from presence_sync.services.repository import SoftDeleteRepository


class OfficeRepository(SoftDeleteRepository):
    model = Office
    entity = EntityKind.OFFICES
    label = "Centre"
    duplicate_message = "Un centre portant ce nom existe déjà."
    payload_class = OfficePayload

    def _natural_key_filter(self, fields: Dict[str, Any]) -> list:
        return [self.model.name == fields["name"]]

    def _snapshot(self, row):
        return self.payload_class(
            uuid=row.uuid,
            name=row.name,
            created_at=row.created_at,
            updated_at=row.updated_at,
            deleted_at=row.deleted_at,
        )

    def _fields_from_remote(self, db: Session, remote_row: dict) -> Optional[Dict[str, Any]]:
        return {"name": remote_row["name"]}


class LevelRepository(OfficeRepository):
    model = Level
    entity = EntityKind.LEVELS
    label = "Niveau"
    duplicate_message = "Un niveau portant ce nom existe déjà."
    payload_class = LevelPayload
