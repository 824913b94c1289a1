"""
Router pour les niveaux (levels).
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from presence_sync.database import get_db
from presence_sync.schemas.office import LevelCreate, LevelResponse, LevelUpdate
from presence_sync.services.office_service import LevelRepository

router = APIRouter(prefix="/api/v1/levels", tags=["Niveaux"])

levels = LevelRepository()


@router.get("", response_model=List[LevelResponse], summary="Lister les niveaux")
def list_levels(db: Session = Depends(get_db)):
    return levels.list(db)


@router.post("", response_model=LevelResponse, status_code=201, summary="Créer un niveau")
def create_level(data: LevelCreate, db: Session = Depends(get_db)):
    try:
        return levels.insert(db, {"name": data.name}, remote_id=data.remote_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.put("/{level_id}", response_model=LevelResponse, summary="Renommer un niveau")
def update_level(level_id: int, data: LevelUpdate, db: Session = Depends(get_db)):
    try:
        level = levels.update(db, level_id, {"name": data.name})
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if level is None:
        raise HTTPException(status_code=404, detail="Niveau introuvable.")
    return level


@router.delete("/{level_id}", status_code=204, summary="Supprimer un niveau")
def delete_level(level_id: int, db: Session = Depends(get_db)):
    if not levels.delete(db, level_id):
        raise HTTPException(status_code=404, detail="Niveau introuvable.")
