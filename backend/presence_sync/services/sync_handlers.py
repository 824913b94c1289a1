"""
Gestionnaires de synchronisation par entité (un par EntityKind).

Chaque gestionnaire sait :
- envoyer une entrée de file (INSERT / UPDATE / DELETE) vers la base distante, puis
  confirmer localement (marquage synchronisé + suppression de l'entrée) dans UNE transaction
- réconcilier la base locale avec la base distante (téléchargement)

Règle de conflit unique, appliquée au téléchargement :
la ligne distante écrase la ligne locale seulement si elle est strictement plus récente
(max(updated_at, created_at)) ET si la ligne locale est déjà synchronisée.
Une modification locale en attente n'est donc jamais écrasée par une lecture distante.

Politique d'identité à l'envoi (INSERT) : si la base distante signale une violation
d'unicité (23505), la copie locale est considérée comme doublon d'une ligne distante,
supprimée localement, et l'entrée est comptée comme synchronisée.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from presence_sync.database import transaction
from presence_sync.models.enums import EntityKind, SyncOperation
from presence_sync.models.sync_queue import SyncQueueEntry
from presence_sync.schemas.sync import DownloadReport, OutboxPayload
from presence_sync.services import attendance_service, outbox_service
from presence_sync.services.office_service import LevelRepository, OfficeRepository
from presence_sync.services.remote_store import RemoteStore, RemoteStoreError
from presence_sync.services.repository import SoftDeleteRepository
from presence_sync.services.student_service import StudentRepository
from presence_sync.timestamps import last_modified, parse_timestamp, to_iso

logger = logging.getLogger(__name__)


def remote_is_newer(remote_row: dict, local_row) -> bool:
    remote_ts = last_modified(remote_row)
    local_ts = local_row.last_modified_at
    if remote_ts is None:
        return False
    return local_ts is None or remote_ts > local_ts


class EntitySyncHandler:
    """Interface commune ; `entity` donne aussi le nom de table distant."""

    entity: EntityKind = None

    @property
    def table(self) -> str:
        return self.entity.value

    def upload(self, db: Session, remote: RemoteStore, entry: SyncQueueEntry, payload: OutboxPayload) -> bool:
        """
        Applique une entrée côté distant. True : entrée confirmée et retirée de la file.
        False ou exception : entrée laissée en file pour la prochaine synchronisation.
        """
        operation = SyncOperation(entry.operation)
        if operation is SyncOperation.INSERT:
            return self.upload_insert(db, remote, entry, payload)
        if operation is SyncOperation.UPDATE:
            return self.upload_update(db, remote, entry, payload)
        return self.upload_delete(db, remote, entry, payload)

    def upload_insert(self, db, remote, entry, payload) -> bool:
        raise NotImplementedError

    def upload_update(self, db, remote, entry, payload) -> bool:
        raise NotImplementedError

    def upload_delete(self, db, remote, entry, payload) -> bool:
        raise NotImplementedError

    def download(self, db: Session, remote: RemoteStore) -> DownloadReport:
        raise NotImplementedError


class SoftDeleteSyncHandler(EntitySyncHandler):
    """Centres, niveaux, élèves : suppression logique des deux côtés."""

    select_columns = "*"

    def __init__(self, repository: SoftDeleteRepository):
        self.repository = repository
        self.entity = repository.entity

    def remote_fields(self, remote: RemoteStore, payload: OutboxPayload) -> Optional[Dict[str, Any]]:
        """Champs métier à envoyer ; None si une référence distante est introuvable."""
        return {"name": payload.name}

    # --- Envoi ---

    def upload_insert(self, db, remote, entry, payload) -> bool:
        fields = self.remote_fields(remote, payload)
        if fields is None:
            return False

        row = {
            "uuid": str(payload.uuid),
            **fields,
            "created_at": to_iso(payload.created_at),
            "updated_at": to_iso(payload.updated_at),
        }
        try:
            inserted = remote.insert(self.table, row)
        except RemoteStoreError as exc:
            if not exc.is_unique_violation:
                raise
            # La ligne existe déjà côté distant : la copie locale est abandonnée
            with transaction(db):
                self.repository.delete_by_uuid(db, payload.uuid)
                outbox_service.clear(db, entry.id)
            logger.info(
                "%s %s déjà présent côté distant (23505) : copie locale supprimée",
                self.entity.value, payload.uuid,
            )
            return True

        with transaction(db):
            local = self.repository.get_by_uuid(db, payload.uuid)
            if local is not None:
                self.repository.set_remote_id(db, local.id, inserted["id"])
                self._mark_synced_if_idle(db, local.id, entry)
            outbox_service.clear(db, entry.id)
        return True

    def upload_update(self, db, remote, entry, payload) -> bool:
        fields = self.remote_fields(remote, payload)
        if fields is None:
            return False

        # Une modification qui croise une suppression distante est abandonnée, pas réinsérée
        remote.update_by_uuid(
            self.table, str(payload.uuid),
            {**fields, "updated_at": to_iso(payload.updated_at)},
            only_active=True,
        )
        with transaction(db):
            local = self.repository.get_by_uuid(db, payload.uuid)
            if local is not None:
                self._mark_synced_if_idle(db, local.id, entry)
            outbox_service.clear(db, entry.id)
        return True

    def upload_delete(self, db, remote, entry, payload) -> bool:
        # Pas de vérification d'existence : supprimer une ligne absente n'est pas une erreur
        remote.update_by_uuid(
            self.table, str(payload.uuid),
            {"deleted_at": to_iso(payload.deleted_at), "updated_at": to_iso(payload.updated_at)},
        )
        with transaction(db):
            local = self.repository.get_by_uuid(db, payload.uuid)
            if local is not None:
                self._mark_synced_if_idle(db, local.id, entry)
            outbox_service.clear(db, entry.id)
        return True

    def _mark_synced_if_idle(self, db: Session, local_id: int, entry: SyncQueueEntry) -> None:
        """Ne marque la ligne synchronisée que si aucune autre modification n'attend en file."""
        if not outbox_service.has_pending(db, self.entity, entry.entity_uuid, exclude_id=entry.id):
            self.repository.mark_synced(db, local_id)

    # --- Téléchargement ---

    def download(self, db: Session, remote: RemoteStore) -> DownloadReport:
        active_rows = remote.select(self.table, columns=self.select_columns)
        deleted_rows = remote.select(self.table, deleted=True, columns=self.select_columns)
        report = DownloadReport(entity=self.entity.value)

        with transaction(db):
            for remote_row in active_rows:
                local = self.repository.get_by_uuid(db, remote_row["uuid"])
                if local is None:
                    if self.repository.insert_if_absent(db, remote_row):
                        report.inserted += 1
                    else:
                        report.skipped += 1
                elif remote_is_newer(remote_row, local) and local.is_synced:
                    if self.repository.apply_remote_fields(db, remote_row):
                        report.updated += 1
                    else:
                        report.skipped += 1
                else:
                    logger.debug(
                        "%s %s conservé (local %s, distant pas plus récent ou modification locale en attente)",
                        self.entity.value, local.uuid, local.sync_state,
                    )

            for remote_row in deleted_rows:
                local = self.repository.get_by_uuid(db, remote_row["uuid"])
                if local is None or local.deleted_at is not None:
                    continue
                if self.repository.mark_remote_deleted(
                    db, remote_row.get("id"), parse_timestamp(remote_row.get("deleted_at")),
                    row_uuid=remote_row["uuid"],
                ):
                    report.deleted += 1

        logger.info(
            "Téléchargement %s : %d ajoutés, %d mis à jour, %d supprimés, %d ignorés",
            self.entity.value, report.inserted, report.updated, report.deleted, report.skipped,
        )
        return report


class StudentSyncHandler(SoftDeleteSyncHandler):
    """Les élèves référencent centre et niveau par clé primaire distante (office_id, level_id)."""

    select_columns = "*,offices(uuid),levels(uuid)"

    def remote_fields(self, remote: RemoteStore, payload: OutboxPayload) -> Optional[Dict[str, Any]]:
        office_id = remote.find_id_by_uuid(EntityKind.OFFICES.value, str(payload.office_uuid))
        level_id = remote.find_id_by_uuid(EntityKind.LEVELS.value, str(payload.level_uuid))
        if office_id is None or level_id is None:
            logger.error(
                "Élève %s : centre %s ou niveau %s introuvable côté distant",
                payload.uuid, payload.office_uuid, payload.level_uuid,
            )
            return None
        return {
            "name": payload.name,
            "birth_date": payload.birth_date.isoformat() if payload.birth_date else None,
            "phone": payload.phone or None,
            "address": payload.address or None,
            "office_id": office_id,
            "level_id": level_id,
        }


class AttendanceSyncHandler(EntitySyncHandler):
    """
    Séances : les statuts enfants voyagent avec le parent (jamais mis en file séparément),
    et sont remplacés en bloc des deux côtés.
    """

    entity = EntityKind.ATTENDANCE_RECORDS
    children_table = "student_attendances"
    select_columns = "*,student_attendances(student_uuid,status,created_at,updated_at)"

    def _replace_remote_children(self, db: Session, remote: RemoteStore, record_uuid: str) -> None:
        remote.delete_where(self.children_table, "attendance_record_uuid", record_uuid)
        remote.insert_many(self.children_table, attendance_service.children_for_upload(db, record_uuid))

    def upload_insert(self, db, remote, entry, payload) -> bool:
        record = attendance_service.get_record(db, payload.uuid)
        if record is None:
            # Séance supprimée localement depuis : l'entrée DELETE qui suit fera foi
            with transaction(db):
                outbox_service.clear(db, entry.id)
            return True

        if record.remote_id is None:
            try:
                inserted = remote.insert(self.table, {
                    "uuid": record.uuid,
                    "date": record.date.isoformat(),
                    "office_uuid": record.office_uuid,
                    "level_uuid": record.level_uuid,
                    "created_at": to_iso(record.created_at),
                    "updated_at": to_iso(record.updated_at),
                })
            except RemoteStoreError as exc:
                if not exc.is_unique_violation:
                    raise
                with transaction(db):
                    attendance_service.delete_by_uuid(db, record.uuid)
                    outbox_service.clear(db, entry.id)
                logger.info("Séance %s déjà présente côté distant (23505) : copie locale supprimée", record.uuid)
                return True

            # Parent confirmé : mémorisé tout de suite pour qu'une reprise n'envoie plus que les statuts
            with transaction(db):
                attendance_service.set_remote_id(db, record.uuid, inserted["id"])

        self._replace_remote_children(db, remote, record.uuid)

        with transaction(db):
            if not outbox_service.has_pending(db, self.entity, record.uuid, exclude_id=entry.id):
                attendance_service.mark_synced(db, record.uuid)
            outbox_service.clear(db, entry.id)
        return True

    def upload_update(self, db, remote, entry, payload) -> bool:
        record = attendance_service.get_record(db, payload.uuid)
        if record is None:
            with transaction(db):
                outbox_service.clear(db, entry.id)
            return True

        remote.update_by_uuid(
            self.table, record.uuid,
            {
                "date": record.date.isoformat(),
                "office_uuid": record.office_uuid,
                "level_uuid": record.level_uuid,
                "updated_at": to_iso(record.updated_at),
            },
            only_active=True,
        )
        self._replace_remote_children(db, remote, record.uuid)

        with transaction(db):
            if not outbox_service.has_pending(db, self.entity, record.uuid, exclude_id=entry.id):
                attendance_service.mark_synced(db, record.uuid)
            outbox_service.clear(db, entry.id)
        return True

    def upload_delete(self, db, remote, entry, payload) -> bool:
        remote.update_by_uuid(
            self.table, str(payload.uuid),
            {"deleted_at": to_iso(payload.deleted_at), "updated_at": to_iso(payload.updated_at)},
        )
        with transaction(db):
            outbox_service.clear(db, entry.id)
        return True

    def download(self, db: Session, remote: RemoteStore) -> DownloadReport:
        active_rows = remote.select(self.table, columns=self.select_columns)
        deleted_rows = remote.select(self.table, deleted=True, columns="uuid")
        report = DownloadReport(entity=self.entity.value)

        with transaction(db):
            # Suppressions d'abord : une séance remplacée à distance libère sa clé (date, centre, niveau)
            for remote_row in deleted_rows:
                if attendance_service.delete_by_uuid(db, remote_row["uuid"]):
                    report.deleted += 1

            for remote_row in active_rows:
                local = attendance_service.get_record(db, remote_row["uuid"])
                if local is None:
                    # Séance supprimée localement, suppression pas encore envoyée
                    if outbox_service.has_pending(db, self.entity, remote_row["uuid"]):
                        report.skipped += 1
                    elif attendance_service.insert_if_absent(db, remote_row):
                        report.inserted += 1
                    else:
                        report.skipped += 1
                elif remote_is_newer(remote_row, local) and local.is_synced:
                    if attendance_service.apply_remote_fields(db, remote_row):
                        report.updated += 1
                    else:
                        report.skipped += 1

        logger.info(
            "Téléchargement séances : %d ajoutées, %d mises à jour, %d supprimées, %d ignorées",
            report.inserted, report.updated, report.deleted, report.skipped,
        )
        return report


def build_handlers() -> Dict[EntityKind, EntitySyncHandler]:
    """Table de correspondance EntityKind → gestionnaire ; doit couvrir toutes les entités."""
    handlers: Dict[EntityKind, EntitySyncHandler] = {
        EntityKind.OFFICES: SoftDeleteSyncHandler(OfficeRepository()),
        EntityKind.LEVELS: SoftDeleteSyncHandler(LevelRepository()),
        EntityKind.STUDENTS: StudentSyncHandler(StudentRepository()),
        EntityKind.ATTENDANCE_RECORDS: AttendanceSyncHandler(),
    }
    missing = set(EntityKind) - set(handlers)
    if missing:
        raise RuntimeError(f"Gestionnaire de synchronisation manquant : {sorted(m.value for m in missing)}")
    return handlers
