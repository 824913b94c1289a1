"""
Router pour les centres (offices).
Toute mutation est écrite localement puis mise en file pour la synchronisation.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from presence_sync.database import get_db
from presence_sync.schemas.office import OfficeCreate, OfficeResponse, OfficeUpdate
from presence_sync.services.office_service import OfficeRepository

router = APIRouter(prefix="/api/v1/offices", tags=["Centres"])

offices = OfficeRepository()


@router.get("", response_model=List[OfficeResponse], summary="Lister les centres")
def list_offices(db: Session = Depends(get_db)):
    """Retourne les centres non supprimés."""
    return offices.list(db)


@router.post("", response_model=OfficeResponse, status_code=201, summary="Créer un centre")
def create_office(data: OfficeCreate, db: Session = Depends(get_db)):
    try:
        return offices.insert(db, {"name": data.name}, remote_id=data.remote_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.put("/{office_id}", response_model=OfficeResponse, summary="Renommer un centre")
def update_office(office_id: int, data: OfficeUpdate, db: Session = Depends(get_db)):
    try:
        office = offices.update(db, office_id, {"name": data.name})
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if office is None:
        raise HTTPException(status_code=404, detail="Centre introuvable.")
    return office


@router.delete("/{office_id}", status_code=204, summary="Supprimer un centre")
def delete_office(office_id: int, db: Session = Depends(get_db)):
    """Suppression logique : le centre disparaît des listes, la suppression est envoyée à la prochaine synchronisation."""
    if not offices.delete(db, office_id):
        raise HTTPException(status_code=404, detail="Centre introuvable.")
