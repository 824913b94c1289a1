"""
Router de synchronisation : déclenchement manuel et état de la file.
Le moteur est construit au démarrage (app.state.sync_engine) et injecté ici.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from presence_sync.database import get_db
from presence_sync.models.enums import SyncTarget
from presence_sync.schemas.sync import OutboxEntryResponse, PendingChanges, SyncResult, SyncStats, SyncStatus
from presence_sync.services import outbox_service
from presence_sync.services.sync_service import SyncEngine

router = APIRouter(prefix="/api/sync", tags=["Synchronisation"])


def get_sync_engine(request: Request) -> SyncEngine:
    return request.app.state.sync_engine


@router.post("", response_model=SyncResult, summary="Synchroniser toutes les entités")
def sync_all(engine: SyncEngine = Depends(get_sync_engine)):
    """
    Envoie la file locale puis télécharge les centres, niveaux, élèves et séances.

    Ne renvoie jamais d'erreur HTTP pour un échec de synchronisation :
    - success=false + message si une synchronisation est déjà en cours ou sans réseau
    - success=false + compteurs si certains éléments ont échoué (ils restent en file)
    """
    return engine.sync_all()


@router.get("/stats", response_model=SyncStats, summary="Compteurs de la file")
def sync_stats(engine: SyncEngine = Depends(get_sync_engine)):
    return engine.stats()


@router.get("/pending", response_model=PendingChanges, summary="Modifications en attente")
def pending_changes(target: Optional[SyncTarget] = None, db: Session = Depends(get_db)):
    """Entrées de la file dans leur ordre d'envoi, éventuellement limitées à une entité."""
    entries = outbox_service.list_pending(db, target.entity if target else None)
    return PendingChanges(entries=[OutboxEntryResponse.model_validate(e) for e in entries])


@router.get("/status", response_model=SyncStatus, summary="État de la synchronisation")
def sync_status(engine: SyncEngine = Depends(get_sync_engine)):
    return engine.status()


@router.post("/{target}", response_model=SyncResult, summary="Synchroniser une entité")
def sync_entity(target: SyncTarget, engine: SyncEngine = Depends(get_sync_engine)):
    """Cibles : offices, levels, students, attendance."""
    return engine.sync_entity(target)
