"""
Service des séances de présence : agrégat AttendanceRecord + StudentAttendance.

L'agrégat est toujours créé, modifié ou supprimé comme une seule unité :
- save_attendance : vérification d'unicité + écriture dans UNE transaction
- modification : remplacement intégral des statuts (suppression puis réinsertion)
- delete_attendance_record : enfants puis parent, une seule entrée DELETE (le parent)
Les statuts enfants ne sont jamais mis en file : ils voyagent avec leur parent.
"""

import logging
import uuid as uuid_module
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from presence_sync.database import transaction
from presence_sync.models.attendance import AttendanceRecord, StudentAttendance
from presence_sync.models.enums import EntityKind, SyncOperation, SyncState
from presence_sync.models.office import Level, Office
from presence_sync.models.student import Student
from presence_sync.schemas.attendance import (
    AttendanceRecordDetail,
    AttendanceRecordResponse,
    StudentAttendanceResponse,
    StudentStatusItem,
)
from presence_sync.schemas.sync import AttendancePayload
from presence_sync.services import outbox_service
from presence_sync.timestamps import last_modified, parse_date, parse_timestamp, to_iso, utcnow

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "Une séance de présence existe déjà pour cette date, ce centre et ce niveau."


# ============================================================
# Lecture
# ============================================================

def list_records(db: Session) -> List[AttendanceRecordResponse]:
    """Toutes les séances, de la plus récente à la plus ancienne, avec noms du centre et du niveau."""
    office = aliased(Office)
    level = aliased(Level)
    rows = db.execute(
        select(AttendanceRecord, office.name, level.name)
        .outerjoin(office, office.uuid == AttendanceRecord.office_uuid)
        .outerjoin(level, level.uuid == AttendanceRecord.level_uuid)
        .order_by(AttendanceRecord.date.desc(), AttendanceRecord.id.desc())
    ).all()
    return [
        AttendanceRecordResponse.model_validate(record).model_copy(
            update={"office_name": office_name, "level_name": level_name}
        )
        for record, office_name, level_name in rows
    ]


def get_record(db: Session, record_uuid) -> Optional[AttendanceRecord]:
    return db.execute(
        select(AttendanceRecord).where(AttendanceRecord.uuid == str(record_uuid))
    ).scalar()


def get_record_by_key(db: Session, day: date, office_uuid, level_uuid) -> Optional[AttendanceRecord]:
    """Séance existante pour (date, centre, niveau), ou None."""
    return db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.date == day,
            AttendanceRecord.office_uuid == str(office_uuid),
            AttendanceRecord.level_uuid == str(level_uuid),
        )
    ).scalar()


def get_statuses(db: Session, record_uuid) -> List[StudentAttendance]:
    return list(db.execute(
        select(StudentAttendance)
        .where(StudentAttendance.attendance_record_uuid == str(record_uuid))
        .order_by(StudentAttendance.id)
    ).scalars().all())


def get_record_detail(db: Session, record_uuid) -> Optional[AttendanceRecordDetail]:
    record = get_record(db, record_uuid)
    if record is None:
        return None
    base = AttendanceRecordResponse.model_validate(record)
    statuses = [StudentAttendanceResponse.model_validate(sa) for sa in get_statuses(db, record.uuid)]
    return AttendanceRecordDetail(**base.model_dump(), statuses=statuses)


def get_students_for_session(db: Session, office_uuid, level_uuid) -> List[Student]:
    """Élèves actifs d'un centre et d'un niveau (liste d'appel)."""
    return list(db.execute(
        select(Student)
        .where(
            Student.office_uuid == str(office_uuid),
            Student.level_uuid == str(level_uuid),
            Student.deleted_at.is_(None),
        )
        .order_by(Student.name)
    ).scalars().all())


# ============================================================
# Mutations locales (agrégat transactionnel)
# ============================================================

def save_attendance(
    db: Session,
    day: date,
    office_uuid,
    level_uuid,
    statuses: Iterable[StudentStatusItem],
    existing_uuid=None,
) -> Optional[AttendanceRecord]:
    """
    Enregistre une séance et tous ses statuts, atomiquement.

    - existing_uuid absent : refuse si une séance existe déjà pour (date, centre, niveau),
      crée la séance (pending_insert) et met un INSERT en file
    - existing_uuid fourni : met à jour la séance (pending_update), remplace TOUS les
      statuts et met un UPDATE en file ; retourne None si la séance est introuvable

    Lève ValueError en cas de doublon ou de référence inconnue ; dans ce cas rien n'est écrit.
    """
    statuses = list(statuses)
    now = utcnow()
    office_uuid, level_uuid = str(office_uuid), str(level_uuid)

    try:
        with transaction(db):
            _check_references(db, office_uuid, level_uuid, [str(s.student_uuid) for s in statuses])

            if existing_uuid is None:
                # Vérification et insertion dans la même transaction
                if get_record_by_key(db, day, office_uuid, level_uuid) is not None:
                    raise ValueError(DUPLICATE_MESSAGE)

                record = AttendanceRecord(
                    uuid=str(uuid_module.uuid4()),
                    date=day,
                    office_uuid=office_uuid,
                    level_uuid=level_uuid,
                    sync_state=SyncState.PENDING_INSERT.value,
                    created_at=now,
                    updated_at=now,
                )
                db.add(record)
                db.flush()
                operation = SyncOperation.INSERT
            else:
                record = get_record(db, existing_uuid)
                if record is None:
                    return None

                other = get_record_by_key(db, day, office_uuid, level_uuid)
                if other is not None and other.uuid != record.uuid:
                    raise ValueError(DUPLICATE_MESSAGE)

                record.date = day
                record.office_uuid = office_uuid
                record.level_uuid = level_uuid
                record.updated_at = now
                record.sync_state = SyncState.PENDING_UPDATE.value
                db.execute(
                    delete(StudentAttendance).where(StudentAttendance.attendance_record_uuid == record.uuid)
                )
                operation = SyncOperation.UPDATE

            for item in statuses:
                db.add(StudentAttendance(
                    attendance_record_uuid=record.uuid,
                    student_uuid=str(item.student_uuid),
                    status=item.status,
                    sync_state=SyncState.PENDING_INSERT.value,
                    created_at=now,
                    updated_at=now,
                ))
            db.flush()

            outbox_service.enqueue(
                db, EntityKind.ATTENDANCE_RECORDS, operation, record.uuid, _snapshot(record),
                entity_local_id=record.id,
                entity_remote_id=record.remote_id,
            )
    except IntegrityError:
        # Filet de sécurité : contrainte unique (date, centre, niveau) violée par une écriture concurrente
        raise ValueError(DUPLICATE_MESSAGE)

    db.refresh(record)
    logger.info(
        "Séance %s enregistrée (%s) : %s, %d statuts",
        record.uuid, operation.value, record.date, len(statuses),
    )
    return record


def delete_attendance_record(db: Session, record_uuid) -> bool:
    """
    Suppression physique de la séance et de ses statuts, puis une entrée DELETE
    pour le parent uniquement. Retourne False si la séance est introuvable.
    """
    record = get_record(db, record_uuid)
    if record is None:
        return False

    with transaction(db):
        now = utcnow()
        payload = AttendancePayload(uuid=record.uuid, updated_at=now, deleted_at=now)
        remote_id = record.remote_id
        db.execute(delete(StudentAttendance).where(StudentAttendance.attendance_record_uuid == record.uuid))
        db.execute(delete(AttendanceRecord).where(AttendanceRecord.uuid == record.uuid))
        outbox_service.enqueue(
            db, EntityKind.ATTENDANCE_RECORDS, SyncOperation.DELETE, record_uuid, payload,
            entity_remote_id=remote_id,
        )

    logger.info("Séance %s supprimée localement", record_uuid)
    return True


def _check_references(db: Session, office_uuid: str, level_uuid: str, student_uuids: List[str]) -> None:
    if db.execute(select(Office.id).where(Office.uuid == office_uuid)).scalar() is None:
        raise ValueError("Centre introuvable.")
    if db.execute(select(Level.id).where(Level.uuid == level_uuid)).scalar() is None:
        raise ValueError("Niveau introuvable.")
    if student_uuids:
        known = set(db.execute(select(Student.uuid).where(Student.uuid.in_(student_uuids))).scalars().all())
        missing = [s for s in student_uuids if s not in known]
        if missing:
            raise ValueError(f"Élève(s) introuvable(s) : {', '.join(missing)}")


def _snapshot(record: AttendanceRecord) -> AttendancePayload:
    return AttendancePayload(
        uuid=record.uuid,
        date=record.date,
        office_uuid=record.office_uuid,
        level_uuid=record.level_uuid,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


# ============================================================
# Crochets de synchronisation (sans commit)
# ============================================================

def mark_synced(db: Session, record_uuid, remote_id: Optional[int] = None) -> None:
    """Marque la séance et tous ses statuts comme synchronisés."""
    values = {"sync_state": SyncState.SYNCED.value}
    if remote_id is not None:
        values["remote_id"] = remote_id
    db.execute(update(AttendanceRecord).where(AttendanceRecord.uuid == str(record_uuid)).values(**values))
    db.execute(
        update(StudentAttendance)
        .where(StudentAttendance.attendance_record_uuid == str(record_uuid))
        .values(sync_state=SyncState.SYNCED.value)
    )


def set_remote_id(db: Session, record_uuid, remote_id: int) -> None:
    db.execute(
        update(AttendanceRecord).where(AttendanceRecord.uuid == str(record_uuid)).values(remote_id=remote_id)
    )


def children_for_upload(db: Session, record_uuid) -> List[dict]:
    """Statuts locaux sous la forme attendue par la table distante student_attendances."""
    return [
        {
            "attendance_record_uuid": sa.attendance_record_uuid,
            "student_uuid": sa.student_uuid,
            "status": sa.status,
            "created_at": to_iso(sa.created_at),
            "updated_at": to_iso(sa.updated_at),
        }
        for sa in get_statuses(db, record_uuid)
    ]


def insert_if_absent(db: Session, remote_row: dict) -> bool:
    """Insère une séance distante inconnue localement, avec ses statuts embarqués."""
    if get_record(db, remote_row["uuid"]) is not None:
        return False
    if not _references_known(db, remote_row) or _key_held_by_other(db, remote_row):
        return False

    created_at = parse_timestamp(remote_row.get("created_at")) or utcnow()
    updated_at = parse_timestamp(remote_row.get("updated_at")) or created_at
    db.add(AttendanceRecord(
        uuid=str(remote_row["uuid"]),
        date=parse_date(remote_row["date"]),
        office_uuid=str(remote_row["office_uuid"]),
        level_uuid=str(remote_row["level_uuid"]),
        remote_id=remote_row.get("id"),
        sync_state=SyncState.SYNCED.value,
        created_at=created_at,
        updated_at=updated_at,
    ))
    db.flush()
    _insert_remote_children(db, remote_row, created_at, updated_at)
    return True


def apply_remote_fields(db: Session, remote_row: dict) -> bool:
    """Écrase la séance locale par la version distante ; statuts remplacés en bloc, jamais fusionnés."""
    record = get_record(db, remote_row["uuid"])
    if record is None or not _references_known(db, remote_row):
        return False
    if _key_held_by_other(db, remote_row):
        return False

    record.date = parse_date(remote_row["date"])
    record.office_uuid = str(remote_row["office_uuid"])
    record.level_uuid = str(remote_row["level_uuid"])
    record.remote_id = remote_row.get("id", record.remote_id)
    record.updated_at = last_modified(remote_row) or record.updated_at
    record.sync_state = SyncState.SYNCED.value

    db.execute(delete(StudentAttendance).where(StudentAttendance.attendance_record_uuid == record.uuid))
    db.flush()
    _insert_remote_children(db, remote_row, record.created_at, record.updated_at)
    return True


def delete_by_uuid(db: Session, record_uuid) -> bool:
    """Suppression physique locale (doublon distant ou suppression constatée côté distant)."""
    db.execute(delete(StudentAttendance).where(StudentAttendance.attendance_record_uuid == str(record_uuid)))
    removed = db.execute(delete(AttendanceRecord).where(AttendanceRecord.uuid == str(record_uuid))).rowcount
    return bool(removed)


def _key_held_by_other(db: Session, remote_row: dict) -> bool:
    """Une autre séance locale (souvent pas encore envoyée) occupe déjà (date, centre, niveau)."""
    holder = get_record_by_key(
        db, parse_date(remote_row["date"]), str(remote_row["office_uuid"]), str(remote_row["level_uuid"])
    )
    if holder is None or holder.uuid == str(remote_row["uuid"]):
        return False
    logger.warning(
        "Séance distante %s ignorée : la séance locale %s (%s) occupe déjà la même date, centre et niveau",
        remote_row["uuid"], holder.uuid, holder.sync_state,
    )
    return True


def _references_known(db: Session, remote_row: dict) -> bool:
    office = db.execute(select(Office.id).where(Office.uuid == str(remote_row.get("office_uuid")))).scalar()
    level = db.execute(select(Level.id).where(Level.uuid == str(remote_row.get("level_uuid")))).scalar()
    if office is None or level is None:
        logger.warning(
            "Séance distante %s ignorée : centre ou niveau absent de la base locale", remote_row.get("uuid")
        )
        return False
    return True


def _insert_remote_children(db: Session, remote_row: dict, default_created, default_updated) -> None:
    """
    Insère les statuts embarqués. Les statuts d'élèves inconnus localement sont ignorés
    (la clé étrangère student_uuid est appliquée) ; ils reviendront au prochain passage.
    """
    children = remote_row.get("student_attendances") or []
    student_uuids = [str(c["student_uuid"]) for c in children]
    known = set()
    if student_uuids:
        known = set(db.execute(select(Student.uuid).where(Student.uuid.in_(student_uuids))).scalars().all())

    for child in children:
        student_uuid = str(child["student_uuid"])
        if student_uuid not in known:
            logger.warning(
                "Statut ignoré pour la séance %s : élève %s absent localement",
                remote_row["uuid"], student_uuid,
            )
            continue
        db.add(StudentAttendance(
            attendance_record_uuid=str(remote_row["uuid"]),
            student_uuid=student_uuid,
            status=child["status"],
            sync_state=SyncState.SYNCED.value,
            created_at=parse_timestamp(child.get("created_at")) or default_created,
            updated_at=parse_timestamp(child.get("updated_at")) or default_updated,
        ))
    db.flush()
