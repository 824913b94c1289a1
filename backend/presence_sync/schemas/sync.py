"""
Schémas Pydantic pour la synchronisation locale ↔ distante.

Les charges utiles de la file (outbox) sont une union étiquetée par `entity` :
chaque variante décrit exactement les champs nécessaires à l'envoi, et la file
est revalidée au moment du drainage (aucune désérialisation non typée).
"""

import uuid
import datetime as dt
from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class _SnapshotPayload(BaseModel):
    """Instantané complet : les UPDATE successifs d'une même ligne sont fusionnés en un seul."""
    uuid: uuid.UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class OfficePayload(_SnapshotPayload):
    entity: Literal["offices"] = "offices"
    name: str


class LevelPayload(_SnapshotPayload):
    entity: Literal["levels"] = "levels"
    name: str


class StudentPayload(_SnapshotPayload):
    entity: Literal["students"] = "students"
    name: str
    birth_date: Optional[dt.date] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    office_uuid: Optional[uuid.UUID] = None
    level_uuid: Optional[uuid.UUID] = None


class AttendancePayload(_SnapshotPayload):
    """Les statuts enfants ne sont pas copiés : ils sont relus localement à l'envoi."""
    entity: Literal["attendance_records"] = "attendance_records"
    date: Optional[dt.date] = None
    office_uuid: Optional[uuid.UUID] = None
    level_uuid: Optional[uuid.UUID] = None


OutboxPayload = Annotated[
    Union[OfficePayload, LevelPayload, StudentPayload, AttendancePayload],
    Field(discriminator="entity"),
]

payload_adapter = TypeAdapter(OutboxPayload)


class OutboxEntryResponse(BaseModel):
    id: int
    entity: str
    entity_local_id: Optional[int]
    entity_uuid: uuid.UUID
    entity_remote_id: Optional[int]
    operation: str
    timestamp: datetime
    retry_count: int
    last_error: Optional[str]

    model_config = {"from_attributes": True}


class SyncResult(BaseModel):
    """Rapport retourné par syncAll / syncEntity."""
    success: bool
    message: str
    synced_count: int = 0
    failed_count: int = 0


class SyncStats(BaseModel):
    """Compteurs de la file, utilisés pour les badges de l'interface."""
    total: int
    by_entity: Dict[str, int]
    by_operation: Dict[str, int]


class SyncStatus(BaseModel):
    in_progress: bool
    is_connected: bool
    unsynced_count: int
    last_sync_at: Optional[datetime] = None
    last_result: Optional[SyncResult] = None


class DownloadReport(BaseModel):
    """Bilan d'une réconciliation distante → locale pour une entité."""
    entity: str
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0


class PendingChanges(BaseModel):
    entries: List[OutboxEntryResponse]
