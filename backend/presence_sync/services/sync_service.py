"""
Moteur de synchronisation locale ↔ distante.

Déroulement de sync_all :
1. refus immédiat si une synchronisation est déjà en cours (pas de file d'attente)
2. refus immédiat si le réseau est indisponible (aucune exception levée)
3. envoi : entrées de file groupées par (entité, opération) dans l'ordre de découverte,
   ordre FIFO à l'intérieur d'un groupe ; un échec est compté sans interrompre les autres
4. téléchargement : centres, niveaux, élèves puis séances (parents avant enfants),
   chaque phase comptant pour une unité réussie ou échouée

Les entrées en échec restent en file : la file elle-même est le mécanisme de reprise.
Le moteur ne lève jamais d'exception vers l'appelant ; tout est rapporté dans SyncResult.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.orm import Session

from presence_sync.database import LocalStore
from presence_sync.models.enums import DOWNLOAD_ORDER, EntityKind, SyncOperation, SyncTarget
from presence_sync.models.sync_queue import SyncQueueEntry
from presence_sync.schemas.sync import SyncResult, SyncStats, SyncStatus
from presence_sync.services import outbox_service
from presence_sync.services.connectivity import ConnectivityChecker
from presence_sync.services.remote_store import RemoteStore
from presence_sync.services.sync_handlers import EntitySyncHandler, build_handlers
from presence_sync.timestamps import utcnow

logger = logging.getLogger(__name__)

ALREADY_RUNNING_MESSAGE = "Synchronisation déjà en cours."
OFFLINE_MESSAGE = "Pas de connexion internet."

SYNCING = "syncing"
COMPLETED = "completed"
ERROR = "error"

Listener = Callable[[str], None]


class SyncEngine:
    """
    Une instance par application, construite au démarrage et injectée
    dans les routers et le planificateur.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStore,
        connectivity: ConnectivityChecker,
        handlers: Optional[Dict[EntityKind, EntitySyncHandler]] = None,
    ):
        self.store = store
        self.remote = remote
        self.connectivity = connectivity
        self.handlers = handlers if handlers is not None else build_handlers()

        self._lock = threading.Lock()
        self._in_progress = False
        self._listeners: List[Listener] = []
        self.last_sync_at: Optional[datetime] = None
        self.last_result: Optional[SyncResult] = None

    # ============================================================
    # Points d'entrée
    # ============================================================

    def sync_all(self) -> SyncResult:
        """Envoi de toute la file puis téléchargement de toutes les entités."""
        return self._run(None)

    def sync_entity(self, target: SyncTarget) -> SyncResult:
        """Même algorithme, limité à une entité (ses entrées de file puis son téléchargement)."""
        return self._run(SyncTarget(target).entity)

    def is_sync_in_progress(self) -> bool:
        return self._in_progress

    def unsynced_count(self) -> int:
        db = self.store.session()
        try:
            return outbox_service.count(db)
        finally:
            db.close()

    def stats(self) -> SyncStats:
        db = self.store.session()
        try:
            return outbox_service.stats(db)
        finally:
            db.close()

    def status(self) -> SyncStatus:
        return SyncStatus(
            in_progress=self.is_sync_in_progress(),
            is_connected=self.connectivity.is_connected(),
            unsynced_count=self.unsynced_count(),
            last_sync_at=self.last_sync_at,
            last_result=self.last_result,
        )

    # --- Abonnés (indicateur d'état de l'interface) ---

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, status: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as exc:
                logger.error("Abonné de synchronisation en erreur (%s) : %s", status, exc)

    # ============================================================
    # Orchestration
    # ============================================================

    def _run(self, entity: Optional[EntityKind]) -> SyncResult:
        if not self._lock.acquire(blocking=False):
            logger.info("Synchronisation refusée : une autre est en cours")
            return SyncResult(success=False, message=ALREADY_RUNNING_MESSAGE)

        try:
            self._in_progress = True
            if not self.connectivity.is_connected():
                logger.info("Synchronisation refusée : pas de connectivité")
                return SyncResult(success=False, message=OFFLINE_MESSAGE)

            self._notify(SYNCING)
            label = entity.value if entity else "complète"
            logger.info("Début de la synchronisation (%s)", label)

            db = self.store.session()
            try:
                up_synced, up_failed = self._upload(db, entity)
                down_synced, down_failed = self._download(
                    db, DOWNLOAD_ORDER if entity is None else (entity,)
                )
            finally:
                db.close()

            synced = up_synced + down_synced
            failed = up_failed + down_failed
            if failed == 0:
                message = "Synchronisation terminée avec succès."
            else:
                message = f"Synchronisation partielle : {synced} réussie(s), {failed} échouée(s)."

            result = SyncResult(success=failed == 0, message=message, synced_count=synced, failed_count=failed)
            self.last_sync_at = utcnow()
            self.last_result = result
            logger.info(
                "Fin de la synchronisation (%s) : %d réussies, %d échouées", label, synced, failed
            )
            self._notify(COMPLETED if result.success else ERROR)
            return result
        except Exception as exc:
            # Erreur hors entité (magasin local indisponible, etc.) : rapportée, jamais propagée
            logger.error("Erreur de synchronisation : %s", exc, exc_info=True)
            result = SyncResult(success=False, message=f"Erreur de synchronisation : {exc}", failed_count=1)
            self.last_result = result
            self._notify(ERROR)
            return result
        finally:
            self._in_progress = False
            self._lock.release()

    def _upload(self, db: Session, entity: Optional[EntityKind]) -> Tuple[int, int]:
        entries = outbox_service.list_pending(db, entity)
        if not entries:
            return 0, 0

        groups: Dict[Tuple[str, str], List[SyncQueueEntry]] = {}
        for entry in entries:
            groups.setdefault((entry.entity, entry.operation), []).append(entry)

        synced = failed = 0
        for (entity_name, operation), group in groups.items():
            group_synced, group_failed = self._upload_group(db, entity_name, operation, group)
            logger.info(
                "Envoi %s %s : %d réussies, %d échouées",
                entity_name, operation, group_synced, group_failed,
            )
            synced += group_synced
            failed += group_failed
        return synced, failed

    def _upload_group(
        self, db: Session, entity_name: str, operation: str, group: List[SyncQueueEntry]
    ) -> Tuple[int, int]:
        try:
            handler = self.handlers[EntityKind(entity_name)]
            SyncOperation(operation)
        except (ValueError, KeyError):
            logger.warning(
                "Type d'entité ou opération inconnu : %s %s (%d entrées ignorées)",
                entity_name, operation, len(group),
            )
            return 0, len(group)

        synced = failed = 0
        for entry in group:
            entry_id, entry_uuid = entry.id, entry.entity_uuid
            try:
                payload = outbox_service.read_payload(entry)
            except ValidationError as exc:
                logger.error("Entrée %d (%s) : charge utile invalide : %s", entry_id, entity_name, exc)
                failed += 1
                continue
            if payload.entity != entity_name:
                logger.error(
                    "Entrée %d : charge utile %s incohérente avec l'entité %s",
                    entry_id, payload.entity, entity_name,
                )
                failed += 1
                continue

            try:
                if handler.upload(db, self.remote, entry, payload):
                    synced += 1
                else:
                    failed += 1
            except Exception as exc:
                db.rollback()
                logger.error(
                    "Envoi %s %s %s en échec (entrée %d conservée) : %s",
                    entity_name, operation, entry_uuid, entry_id, exc,
                )
                failed += 1
        return synced, failed

    def _download(self, db: Session, entities) -> Tuple[int, int]:
        synced = failed = 0
        for entity in entities:
            try:
                self.handlers[entity].download(db, self.remote)
                synced += 1
            except Exception as exc:
                db.rollback()
                logger.error("Téléchargement %s en échec : %s", entity.value, exc)
                failed += 1
        return synced, failed
