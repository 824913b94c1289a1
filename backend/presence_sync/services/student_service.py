"""
Dépôt des élèves.
Clé naturelle : (nom, centre, niveau), unique parmi les lignes non supprimées.

Côté distant, un élève référence son centre et son niveau par clé primaire
distante (office_id, level_id) ; localement, par UUID.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, aliased

from presence_sync.models.attendance import StudentAttendance
from presence_sync.models.enums import EntityKind
from presence_sync.models.office import Level, Office
from presence_sync.models.student import Student
from presence_sync.schemas.student import StudentResponse
from presence_sync.schemas.sync import StudentPayload
from presence_sync.services.repository import SoftDeleteRepository
from presence_sync.timestamps import parse_date

logger = logging.getLogger(__name__)


class StudentRepository(SoftDeleteRepository):
    model = Student
    entity = EntityKind.STUDENTS
    label = "Élève"
    duplicate_message = "Un élève portant ce nom existe déjà dans ce centre et ce niveau."

    def _natural_key_filter(self, fields: Dict[str, Any]) -> list:
        return [
            Student.name == fields["name"],
            Student.office_uuid == str(fields["office_uuid"]),
            Student.level_uuid == str(fields["level_uuid"]),
        ]

    def _validate_references(self, db: Session, fields: Dict[str, Any]) -> None:
        office = db.execute(
            select(Office.id).where(Office.uuid == str(fields["office_uuid"]), Office.deleted_at.is_(None))
        ).scalar()
        if office is None:
            raise ValueError("Centre introuvable.")
        level = db.execute(
            select(Level.id).where(Level.uuid == str(fields["level_uuid"]), Level.deleted_at.is_(None))
        ).scalar()
        if level is None:
            raise ValueError("Niveau introuvable.")

    def _snapshot(self, row: Student) -> StudentPayload:
        return StudentPayload(
            uuid=row.uuid,
            name=row.name,
            birth_date=row.birth_date,
            phone=row.phone,
            address=row.address,
            office_uuid=row.office_uuid,
            level_uuid=row.level_uuid,
            created_at=row.created_at,
            updated_at=row.updated_at,
            deleted_at=row.deleted_at,
        )

    def _fields_from_remote(self, db: Session, remote_row: dict) -> Optional[Dict[str, Any]]:
        office_uuid = _embedded_uuid(remote_row, "office_uuid", "offices") or _local_uuid_by_remote_id(
            db, Office, remote_row.get("office_id")
        )
        level_uuid = _embedded_uuid(remote_row, "level_uuid", "levels") or _local_uuid_by_remote_id(
            db, Level, remote_row.get("level_id")
        )
        if not office_uuid or not level_uuid:
            logger.warning(
                "Élève distant %s ignoré : centre ou niveau introuvable localement",
                remote_row.get("uuid"),
            )
            return None

        # La référence doit exister localement (clé étrangère active)
        if not _local_uuid_exists(db, Office, office_uuid) or not _local_uuid_exists(db, Level, level_uuid):
            logger.warning(
                "Élève distant %s ignoré : centre %s ou niveau %s absent de la base locale",
                remote_row.get("uuid"), office_uuid, level_uuid,
            )
            return None

        return {
            "name": remote_row["name"],
            "birth_date": parse_date(remote_row.get("birth_date")),
            "phone": remote_row.get("phone"),
            "address": remote_row.get("address"),
            "office_uuid": office_uuid,
            "level_uuid": level_uuid,
        }

    def _delete_children(self, db: Session, row: Student) -> None:
        db.execute(delete(StudentAttendance).where(StudentAttendance.student_uuid == row.uuid))

    def list_detailed(
        self,
        db: Session,
        office_uuid: Optional[str] = None,
        level_uuid: Optional[str] = None,
    ) -> List[StudentResponse]:
        """Élèves actifs avec le nom de leur centre et de leur niveau (LEFT JOIN)."""
        office = aliased(Office)
        level = aliased(Level)
        query = (
            select(Student, office.name, level.name)
            .outerjoin(office, office.uuid == Student.office_uuid)
            .outerjoin(level, level.uuid == Student.level_uuid)
            .where(Student.deleted_at.is_(None))
        )
        if office_uuid is not None:
            query = query.where(Student.office_uuid == str(office_uuid))
        if level_uuid is not None:
            query = query.where(Student.level_uuid == str(level_uuid))

        rows = db.execute(query.order_by(Student.id)).all()
        return [
            StudentResponse.model_validate(student).model_copy(
                update={"office_name": office_name, "level_name": level_name}
            )
            for student, office_name, level_name in rows
        ]


def _embedded_uuid(remote_row: dict, flat_key: str, embed_key: str) -> Optional[str]:
    """UUID porté directement par la ligne, ou par la relation embarquée (select=*,offices(uuid))."""
    if remote_row.get(flat_key):
        return str(remote_row[flat_key])
    embedded = remote_row.get(embed_key)
    if isinstance(embedded, dict) and embedded.get("uuid"):
        return str(embedded["uuid"])
    return None


def _local_uuid_by_remote_id(db: Session, model, remote_id: Optional[int]) -> Optional[str]:
    if remote_id is None:
        return None
    return db.execute(select(model.uuid).where(model.remote_id == remote_id)).scalar()


def _local_uuid_exists(db: Session, model, row_uuid: str) -> bool:
    return db.execute(select(model.id).where(model.uuid == row_uuid)).scalar() is not None


def student_fields(data) -> Dict[str, Any]:
    """Champs métier d'un schéma StudentCreate / StudentUpdate, UUID en texte."""
    return {
        "name": data.name,
        "birth_date": data.birth_date,
        "phone": data.phone,
        "address": data.address,
        "office_uuid": str(data.office_uuid),
        "level_uuid": str(data.level_uuid),
    }
