"""
Service de la file de synchronisation (outbox).

Contrat :
- enqueue : ajoute une entrée, sans déduplication
- enqueue_update : remplace l'UPDATE en attente de la même ligne (entity, entity_local_id)
- list_pending : ordre FIFO (timestamp croissant, puis id), ordre d'application distant
- clear : supprime une entrée après confirmation distante

Aucune de ces fonctions ne commite : l'appelant fournit la portée transactionnelle,
de sorte que la ligne métier et son entrée de file restent cohérentes.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from presence_sync.models.enums import EntityKind, SyncOperation
from presence_sync.models.sync_queue import SyncQueueEntry
from presence_sync.schemas.sync import OutboxPayload, SyncStats, payload_adapter
from presence_sync.timestamps import utcnow

logger = logging.getLogger(__name__)


def enqueue(
    db: Session,
    entity: EntityKind,
    operation: SyncOperation,
    entity_uuid: uuid.UUID,
    payload: OutboxPayload,
    entity_local_id: Optional[int] = None,
    entity_remote_id: Optional[int] = None,
) -> SyncQueueEntry:
    """Ajoute une entrée à la file. N'échoue que sur erreur d'E/S du magasin local."""
    entry = SyncQueueEntry(
        entity=entity.value,
        entity_local_id=entity_local_id,
        entity_uuid=str(entity_uuid),
        entity_remote_id=entity_remote_id,
        operation=operation.value,
        payload=payload.model_dump(mode="json"),
        timestamp=utcnow(),
        retry_count=0,
    )
    db.add(entry)
    db.flush()
    logger.debug("File : %s %s %s (entrée %d)", entity.value, operation.value, entity_uuid, entry.id)
    return entry


def enqueue_update(
    db: Session,
    entity: EntityKind,
    entity_local_id: int,
    entity_uuid: uuid.UUID,
    payload: OutboxPayload,
    entity_remote_id: Optional[int] = None,
) -> SyncQueueEntry:
    """
    Upsert d'un UPDATE indexé par (entity, entity_local_id) : l'UPDATE déjà en attente
    pour cette ligne est remplacé par la nouvelle entrée, placée en fin de file.
    Correct uniquement parce que les charges utiles sont des instantanés complets.
    """
    replaced = db.execute(
        delete(SyncQueueEntry).where(
            SyncQueueEntry.entity == entity.value,
            SyncQueueEntry.entity_local_id == entity_local_id,
            SyncQueueEntry.operation == SyncOperation.UPDATE.value,
        )
    ).rowcount
    if replaced:
        logger.debug("File : UPDATE en attente remplacé pour %s #%d", entity.value, entity_local_id)

    return enqueue(
        db,
        entity,
        SyncOperation.UPDATE,
        entity_uuid,
        payload,
        entity_local_id=entity_local_id,
        entity_remote_id=entity_remote_id,
    )


def list_pending(db: Session, entity: Optional[EntityKind] = None) -> List[SyncQueueEntry]:
    """Entrées en attente, dans l'ordre où les modifications ont été faites."""
    query = select(SyncQueueEntry)
    if entity is not None:
        query = query.where(SyncQueueEntry.entity == entity.value)
    query = query.order_by(SyncQueueEntry.timestamp.asc(), SyncQueueEntry.id.asc())
    return list(db.execute(query).scalars().all())


def read_payload(entry: SyncQueueEntry) -> OutboxPayload:
    """Revalide la charge utile stockée (lève pydantic.ValidationError si corrompue)."""
    return payload_adapter.validate_python(entry.payload)


def clear(db: Session, entry_id: int) -> None:
    db.execute(delete(SyncQueueEntry).where(SyncQueueEntry.id == entry_id))


def has_pending(db: Session, entity: EntityKind, entity_uuid: str, exclude_id: Optional[int] = None) -> bool:
    """Vrai si une autre modification de cette ligne attend encore d'être envoyée."""
    query = select(SyncQueueEntry.id).where(
        SyncQueueEntry.entity == entity.value,
        SyncQueueEntry.entity_uuid == str(entity_uuid),
    )
    if exclude_id is not None:
        query = query.where(SyncQueueEntry.id != exclude_id)
    return db.execute(query.limit(1)).scalar() is not None


def count(db: Session, entity: Optional[EntityKind] = None) -> int:
    query = select(func.count()).select_from(SyncQueueEntry)
    if entity is not None:
        query = query.where(SyncQueueEntry.entity == entity.value)
    return db.execute(query).scalar() or 0


def stats(db: Session) -> SyncStats:
    """Compteurs en lecture seule (total, par entité, par opération)."""
    by_entity = {
        entity: n
        for entity, n in db.execute(
            select(SyncQueueEntry.entity, func.count()).group_by(SyncQueueEntry.entity)
        ).all()
    }
    by_operation = {
        operation: n
        for operation, n in db.execute(
            select(SyncQueueEntry.operation, func.count()).group_by(SyncQueueEntry.operation)
        ).all()
    }
    return SyncStats(total=sum(by_entity.values()), by_entity=by_entity, by_operation=by_operation)


def clear_all(db: Session) -> int:
    """Vide la file (maintenance). Retourne le nombre d'entrées supprimées."""
    removed = db.execute(delete(SyncQueueEntry)).rowcount
    logger.warning("File de synchronisation vidée manuellement : %d entrées supprimées", removed)
    return removed
