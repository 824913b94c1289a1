"""
Dépôt commun aux entités à suppression logique (centres, niveaux, élèves).

Opérations publiques (appelées par l'interface) : list, get, insert, update, delete.
Chaque mutation écrit la ligne ET son entrée de file dans une même transaction.

Crochets de synchronisation (appelés par le moteur, sans commit : le moteur
fournit la transaction) : mark_synced, mark_remote_deleted, apply_remote_fields,
insert_if_absent, delete_by_uuid.
"""

import logging
import uuid as uuid_module
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from presence_sync.database import transaction
from presence_sync.models.enums import EntityKind, SyncOperation, SyncState
from presence_sync.schemas.sync import OutboxPayload
from presence_sync.services import outbox_service
from presence_sync.timestamps import last_modified, parse_timestamp, utcnow

logger = logging.getLogger(__name__)


class SoftDeleteRepository:
    """Base des dépôts : les sous-classes définissent la clé naturelle et les champs."""

    model: Any = None
    entity: EntityKind = None
    label: str = "ligne"
    duplicate_message: str = "Cette ligne existe déjà."

    # --- À définir par les sous-classes ---

    def _natural_key_filter(self, fields: Dict[str, Any]) -> list:
        """Conditions SQL identifiant la clé naturelle (unique parmi les lignes actives)."""
        raise NotImplementedError

    def _validate_references(self, db: Session, fields: Dict[str, Any]) -> None:
        """Vérifie les références vers d'autres entités (rien par défaut)."""

    def _snapshot(self, row) -> OutboxPayload:
        raise NotImplementedError

    def _fields_from_remote(self, db: Session, remote_row: dict) -> Optional[Dict[str, Any]]:
        """Champs métier d'une ligne distante ; None si la ligne est inexploitable localement."""
        raise NotImplementedError

    def _delete_children(self, db: Session, row) -> None:
        """Supprime physiquement les lignes enfants avant un marquage supprimé (rien par défaut)."""

    # --- Lecture ---

    def list(self, db: Session) -> List[Any]:
        """Lignes actives uniquement : les tombstones ne sont jamais exposées."""
        return list(db.execute(
            select(self.model)
            .where(self.model.deleted_at.is_(None))
            .order_by(self.model.id)
        ).scalars().all())

    def get(self, db: Session, local_id: int):
        """Ligne active par identifiant local, ou None."""
        return db.execute(
            select(self.model).where(self.model.id == local_id, self.model.deleted_at.is_(None))
        ).scalar()

    def get_by_uuid(self, db: Session, row_uuid) -> Optional[Any]:
        """Ligne par UUID, supprimée ou non."""
        return db.execute(
            select(self.model).where(self.model.uuid == str(row_uuid))
        ).scalar()

    def _find_active_duplicate(self, db: Session, fields: Dict[str, Any], exclude_id: Optional[int] = None):
        query = select(self.model.id).where(
            *self._natural_key_filter(fields),
            self.model.deleted_at.is_(None),
        )
        if exclude_id is not None:
            query = query.where(self.model.id != exclude_id)
        return db.execute(query.limit(1)).scalar()

    # --- Mutations locales ---

    def insert(self, db: Session, fields: Dict[str, Any], remote_id: Optional[int] = None):
        """
        Crée une ligne avec une nouvelle identité stable.
        - remote_id fourni (amorçage) : ligne déjà synchronisée, pas d'entrée de file
        - sinon : pending_insert + entrée INSERT
        Lève ValueError si une ligne active porte déjà la même clé naturelle.
        """
        with transaction(db):
            if self._find_active_duplicate(db, fields):
                raise ValueError(self.duplicate_message)
            self._validate_references(db, fields)

            now = utcnow()
            row = self.model(
                uuid=str(uuid_module.uuid4()),
                remote_id=remote_id,
                sync_state=(SyncState.SYNCED if remote_id else SyncState.PENDING_INSERT).value,
                created_at=now,
                updated_at=now,
                **fields,
            )
            db.add(row)
            db.flush()  # obtenir l'id local avant d'écrire l'entrée de file

            if remote_id is None:
                outbox_service.enqueue(
                    db, self.entity, SyncOperation.INSERT, row.uuid, self._snapshot(row),
                    entity_local_id=row.id,
                )

        db.refresh(row)
        logger.info("%s créé localement : %s (%s)", self.label, row.uuid, row.sync_state)
        return row

    def update(self, db: Session, local_id: int, fields: Dict[str, Any]):
        """
        Modifie une ligne active et remplace l'UPDATE éventuellement en attente.
        Retourne None si la ligne est introuvable ; ValueError si la clé naturelle entre en collision.
        """
        row = self.get(db, local_id)
        if row is None:
            return None

        with transaction(db):
            if self._find_active_duplicate(db, fields, exclude_id=local_id):
                raise ValueError(self.duplicate_message)
            self._validate_references(db, fields)

            for field, value in fields.items():
                setattr(row, field, value)
            row.updated_at = utcnow()
            row.sync_state = SyncState.PENDING_UPDATE.value
            db.flush()

            outbox_service.enqueue_update(
                db, self.entity, row.id, row.uuid, self._snapshot(row),
                entity_remote_id=row.remote_id,
            )

        db.refresh(row)
        return row

    def delete(self, db: Session, local_id: int) -> bool:
        """
        Suppression logique : deleted_at renseigné, pending_delete, entrée DELETE.
        La ligne reste en base jusqu'à confirmation distante.
        Retourne False si la ligne est introuvable ou déjà supprimée.
        """
        row = self.get(db, local_id)
        if row is None:
            return False

        with transaction(db):
            now = utcnow()
            row.deleted_at = now
            row.updated_at = now
            row.sync_state = SyncState.PENDING_DELETE.value
            db.flush()

            outbox_service.enqueue(
                db, self.entity, SyncOperation.DELETE, row.uuid, self._snapshot(row),
                entity_local_id=row.id,
                entity_remote_id=row.remote_id,
            )

        logger.info("%s supprimé localement : %s", self.label, row.uuid)
        return True

    # --- Crochets de synchronisation (sans commit) ---

    def mark_synced(self, db: Session, local_id: int, remote_id: Optional[int] = None) -> None:
        values = {"sync_state": SyncState.SYNCED.value}
        if remote_id is not None:
            values["remote_id"] = remote_id
        db.execute(update(self.model).where(self.model.id == local_id).values(**values))

    def set_remote_id(self, db: Session, local_id: int, remote_id: int) -> None:
        db.execute(update(self.model).where(self.model.id == local_id).values(remote_id=remote_id))

    def mark_remote_deleted(
        self, db: Session, remote_id: Optional[int], deleted_at: Optional[datetime], row_uuid=None
    ) -> bool:
        """
        Suppression distante constatée : enfants supprimés physiquement, puis ligne
        marquée supprimée ET synchronisée. Recherche par remote_id, puis par UUID.
        """
        row = None
        if remote_id is not None:
            row = db.execute(select(self.model).where(self.model.remote_id == remote_id)).scalar()
        if row is None and row_uuid is not None:
            row = self.get_by_uuid(db, row_uuid)
        if row is None or row.deleted_at is not None:
            return False

        self._delete_children(db, row)
        row.deleted_at = deleted_at or utcnow()
        row.sync_state = SyncState.SYNCED.value
        db.flush()
        return True

    def apply_remote_fields(self, db: Session, remote_row: dict) -> bool:
        """Écrase les champs locaux par ceux de la ligne distante (ligne marquée synchronisée)."""
        row = self.get_by_uuid(db, remote_row["uuid"])
        if row is None:
            return False
        fields = self._fields_from_remote(db, remote_row)
        if fields is None:
            return False

        for field, value in fields.items():
            setattr(row, field, value)
        row.remote_id = remote_row.get("id", row.remote_id)
        row.updated_at = last_modified(remote_row) or row.updated_at
        row.sync_state = SyncState.SYNCED.value
        db.flush()
        return True

    def insert_if_absent(self, db: Session, remote_row: dict) -> bool:
        """Insère une ligne distante inconnue localement, entièrement synchronisée."""
        if self.get_by_uuid(db, remote_row["uuid"]) is not None:
            return False
        fields = self._fields_from_remote(db, remote_row)
        if fields is None:
            return False

        now = utcnow()
        created_at = parse_timestamp(remote_row.get("created_at")) or now
        db.add(self.model(
            uuid=str(remote_row["uuid"]),
            remote_id=remote_row.get("id"),
            sync_state=SyncState.SYNCED.value,
            created_at=created_at,
            updated_at=parse_timestamp(remote_row.get("updated_at")) or created_at,
            deleted_at=parse_timestamp(remote_row.get("deleted_at")),
            **fields,
        ))
        db.flush()
        return True

    def delete_by_uuid(self, db: Session, row_uuid) -> bool:
        """
        Suppression physique, utilisée uniquement pour annuler une insertion locale
        dont l'équivalent existait déjà côté distant.
        """
        removed = db.execute(delete(self.model).where(self.model.uuid == str(row_uuid))).rowcount
        if removed:
            logger.info("%s local %s supprimé (doublon d'une ligne distante)", self.label, row_uuid)
        return bool(removed)
