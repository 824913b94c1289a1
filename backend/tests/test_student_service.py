"""
Tests unitaires pour le dépôt des élèves.
Couverture : clé naturelle (nom, centre, niveau), références, suppression logique
avec statuts enfants, lecture avec noms de centre et de niveau, résolution distante.
"""

import uuid
from datetime import date

import pytest

from presence_sync.models.enums import SyncState
from presence_sync.schemas.attendance import StudentStatusItem
from presence_sync.schemas.student import StudentCreate, StudentUpdate
from presence_sync.services import attendance_service, outbox_service
from presence_sync.services.office_service import LevelRepository, OfficeRepository
from presence_sync.services.student_service import StudentRepository, student_fields

offices = OfficeRepository()
levels = LevelRepository()
students = StudentRepository()


@pytest.fixture
def office(db):
    return offices.insert(db, {"name": "Centre A"}, remote_id=1)


@pytest.fixture
def level(db):
    return levels.insert(db, {"name": "CP"}, remote_id=1)


def make_student(db, office, level, name="Ali", **extra):
    data = StudentCreate(name=name, office_uuid=office.uuid, level_uuid=level.uuid, **extra)
    return students.insert(db, student_fields(data))


# ============================================================
# insert
# ============================================================

def test_insert_eleve(db, office, level):
    student = make_student(db, office, level, phone="0600000000", birth_date=date(2015, 3, 1))

    assert student.sync_state == SyncState.PENDING_INSERT.value
    (entry,) = outbox_service.list_pending(db)
    payload = outbox_service.read_payload(entry)
    assert payload.entity == "students"
    assert str(payload.office_uuid) == office.uuid
    assert payload.birth_date == date(2015, 3, 1)


def test_insert_doublon_meme_centre_niveau(db, office, level):
    """Même nom actif dans le même (centre, niveau) : rejet, aucune entrée de file ajoutée."""
    make_student(db, office, level)
    before = outbox_service.count(db)

    with pytest.raises(ValueError, match="existe déjà"):
        make_student(db, office, level)
    assert outbox_service.count(db) == before


def test_insert_meme_nom_autre_niveau(db, office, level):
    other_level = levels.insert(db, {"name": "CE1"}, remote_id=2)
    make_student(db, office, level)
    assert make_student(db, office, other_level).name == "Ali"


def test_insert_centre_inconnu(db, level):
    data = StudentCreate(name="Ali", office_uuid=uuid.uuid4(), level_uuid=level.uuid)
    with pytest.raises(ValueError, match="Centre introuvable"):
        students.insert(db, student_fields(data))
    assert outbox_service.count(db) == 0


def test_insert_niveau_supprime(db, office, level):
    levels.delete(db, level.id)
    data = StudentCreate(name="Ali", office_uuid=office.uuid, level_uuid=level.uuid)
    with pytest.raises(ValueError, match="Niveau introuvable"):
        students.insert(db, student_fields(data))


# ============================================================
# update / delete
# ============================================================

def test_update_instantane_complet(db, office, level):
    """Deux modifications successives : l'UPDATE restant porte le nom ET le téléphone."""
    student = make_student(db, office, level)
    students.mark_synced(db, student.id)
    outbox_service.clear_all(db)
    db.commit()

    first = StudentUpdate(name="Ali B.", office_uuid=office.uuid, level_uuid=level.uuid)
    students.update(db, student.id, student_fields(first))
    second = first.model_copy(update={"phone": "0611111111"})
    students.update(db, student.id, student_fields(second))

    (entry,) = outbox_service.list_pending(db)
    payload = outbox_service.read_payload(entry)
    assert payload.name == "Ali B."
    assert payload.phone == "0611111111"


def test_delete_supprime_les_statuts_a_la_confirmation_distante(db, office, level):
    student = make_student(db, office, level)
    attendance_service.save_attendance(
        db, date(2026, 3, 2), office.uuid, level.uuid,
        [StudentStatusItem(student_uuid=student.uuid, status="present")],
    )

    students.mark_synced(db, student.id, remote_id=11)
    db.commit()
    assert students.mark_remote_deleted(db, 11, None) is True
    db.commit()

    record = attendance_service.get_record_by_key(db, date(2026, 3, 2), office.uuid, level.uuid)
    assert attendance_service.get_statuses(db, record.uuid) == []
    assert students.list(db) == []


# ============================================================
# Lecture
# ============================================================

def test_list_detailed_noms_et_filtres(db, office, level):
    other_level = levels.insert(db, {"name": "CE1"}, remote_id=2)
    make_student(db, office, level, name="Ali")
    make_student(db, office, other_level, name="Sara")

    everyone = students.list_detailed(db)
    assert [s.name for s in everyone] == ["Ali", "Sara"]
    assert everyone[0].office_name == "Centre A"
    assert everyone[0].level_name == "CP"

    filtered = students.list_detailed(db, level_uuid=other_level.uuid)
    assert [s.name for s in filtered] == ["Sara"]


# ============================================================
# Résolution des références distantes
# ============================================================

def test_fields_from_remote_par_relation_embarquee(db, office, level):
    remote_row = {"uuid": str(uuid.uuid4()), "name": "Yanis",
                  "offices": {"uuid": office.uuid}, "levels": {"uuid": level.uuid}}
    fields = students._fields_from_remote(db, remote_row)
    assert fields["office_uuid"] == office.uuid
    assert fields["level_uuid"] == level.uuid


def test_fields_from_remote_par_remote_id(db, office, level):
    remote_row = {"uuid": str(uuid.uuid4()), "name": "Yanis", "office_id": 1, "level_id": 1}
    fields = students._fields_from_remote(db, remote_row)
    assert fields["office_uuid"] == office.uuid


def test_fields_from_remote_reference_inconnue(db, office):
    remote_row = {"uuid": str(uuid.uuid4()), "name": "Yanis",
                  "offices": {"uuid": office.uuid}, "levels": {"uuid": str(uuid.uuid4())}}
    assert students._fields_from_remote(db, remote_row) is None
