"""
Router pour les séances de présence (séance + statuts par élève, écrits en un seul bloc).
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from presence_sync.database import get_db
from presence_sync.schemas.attendance import AttendanceRecordDetail, AttendanceRecordResponse, AttendanceSave
from presence_sync.schemas.student import StudentResponse
from presence_sync.services import attendance_service

router = APIRouter(prefix="/api/v1/attendance", tags=["Présences"])


@router.get("", response_model=List[AttendanceRecordResponse], summary="Lister les séances")
def list_records(db: Session = Depends(get_db)):
    return attendance_service.list_records(db)


@router.get("/students", response_model=List[StudentResponse], summary="Liste d'appel")
def students_for_session(office_uuid: uuid.UUID, level_uuid: uuid.UUID, db: Session = Depends(get_db)):
    """Élèves actifs d'un centre et d'un niveau, triés par nom."""
    return attendance_service.get_students_for_session(db, office_uuid, level_uuid)


@router.get("/{record_uuid}", response_model=AttendanceRecordDetail, summary="Détail d'une séance")
def get_record(record_uuid: uuid.UUID, db: Session = Depends(get_db)):
    detail = attendance_service.get_record_detail(db, record_uuid)
    if detail is None:
        raise HTTPException(status_code=404, detail="Séance introuvable.")
    return detail


@router.post("", response_model=AttendanceRecordDetail, status_code=201, summary="Enregistrer une séance")
def create_record(data: AttendanceSave, db: Session = Depends(get_db)):
    """
    Crée la séance et tous ses statuts en une transaction.
    409 si une séance existe déjà pour cette date, ce centre et ce niveau.
    """
    try:
        record = attendance_service.save_attendance(
            db, data.date, data.office_uuid, data.level_uuid, data.statuses
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return attendance_service.get_record_detail(db, record.uuid)


@router.put("/{record_uuid}", response_model=AttendanceRecordDetail, summary="Remplacer une séance")
def replace_record(record_uuid: uuid.UUID, data: AttendanceSave, db: Session = Depends(get_db)):
    """Remplace la séance et l'intégralité de ses statuts."""
    try:
        record = attendance_service.save_attendance(
            db, data.date, data.office_uuid, data.level_uuid, data.statuses,
            existing_uuid=record_uuid,
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if record is None:
        raise HTTPException(status_code=404, detail="Séance introuvable.")
    return attendance_service.get_record_detail(db, record.uuid)


@router.delete("/{record_uuid}", status_code=204, summary="Supprimer une séance")
def delete_record(record_uuid: uuid.UUID, db: Session = Depends(get_db)):
    """Suppression définitive de la séance et de ses statuts."""
    if not attendance_service.delete_attendance_record(db, record_uuid):
        raise HTTPException(status_code=404, detail="Séance introuvable.")
