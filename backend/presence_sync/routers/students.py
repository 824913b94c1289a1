"""
Router pour les élèves.
Listage filtrable par centre et niveau ; création, modification et suppression logique.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from presence_sync.database import get_db
from presence_sync.schemas.student import StudentCreate, StudentResponse, StudentUpdate
from presence_sync.services.student_service import StudentRepository, student_fields

router = APIRouter(prefix="/api/v1/students", tags=["Élèves"])

students = StudentRepository()


@router.get("", response_model=List[StudentResponse], summary="Lister les élèves")
def list_students(
    office_uuid: Optional[uuid.UUID] = None,
    level_uuid: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
):
    """Retourne les élèves non supprimés, avec le nom de leur centre et de leur niveau."""
    return students.list_detailed(db, office_uuid=office_uuid, level_uuid=level_uuid)


@router.post("", response_model=StudentResponse, status_code=201, summary="Créer un élève")
def create_student(data: StudentCreate, db: Session = Depends(get_db)):
    """Refusé (409) si un élève actif porte déjà ce nom dans le même centre et le même niveau."""
    try:
        return students.insert(db, student_fields(data), remote_id=data.remote_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.put("/{student_id}", response_model=StudentResponse, summary="Modifier un élève")
def update_student(student_id: int, data: StudentUpdate, db: Session = Depends(get_db)):
    """Remplace tous les champs de l'élève (instantané complet)."""
    try:
        student = students.update(db, student_id, student_fields(data))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if student is None:
        raise HTTPException(status_code=404, detail="Élève introuvable.")
    return student


@router.delete("/{student_id}", status_code=204, summary="Supprimer un élève")
def delete_student(student_id: int, db: Session = Depends(get_db)):
    if not students.delete(db, student_id):
        raise HTTPException(status_code=404, detail="Élève introuvable.")
