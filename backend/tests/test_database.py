"""
Tests du magasin local : portée transactionnelle et clés étrangères SQLite.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from presence_sync.models.office import Office
from presence_sync.models.student import Student
from presence_sync.timestamps import utcnow


def make_office(name="Centre A", row_uuid="11111111-1111-4111-8111-111111111111"):
    return Office(uuid=row_uuid, name=name, sync_state="pending_insert", created_at=utcnow())


def test_run_in_transaction_commit(store):
    with store.run_in_transaction() as db:
        db.add(make_office())

    with store.run_in_transaction() as db:
        assert db.execute(select(Office.name)).scalars().all() == ["Centre A"]


def test_run_in_transaction_rollback(store):
    with pytest.raises(RuntimeError):
        with store.run_in_transaction() as db:
            db.add(make_office())
            db.flush()
            raise RuntimeError("échec au milieu de la transaction")

    with store.run_in_transaction() as db:
        assert db.execute(select(Office.id)).scalars().all() == []


def test_cles_etrangeres_actives(store):
    with pytest.raises(IntegrityError):
        with store.run_in_transaction() as db:
            db.add(Student(
                uuid="22222222-2222-4222-8222-222222222222",
                name="Ali",
                office_uuid="inconnu",
                level_uuid="inconnu",
                sync_state="pending_insert",
                created_at=utcnow(),
            ))


def test_create_schema_idempotent(store):
    store.create_schema()
    with store.run_in_transaction() as db:
        assert db.execute(select(Office.id)).scalars().all() == []
