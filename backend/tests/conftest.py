"""
Configuration partagée pour tous les tests.

- store : magasin local SQLite en mémoire, schéma créé (clés étrangères actives)
- remote : fausse base distante appliquant les contraintes uniques (code 23505)
- engine : moteur de synchronisation branché sur les deux, réseau disponible
- client : client HTTP de test, get_db et get_sync_engine remplacés par les fixtures
"""

import uuid
from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from presence_sync.database import LocalStore, get_db
from presence_sync.main import app
from presence_sync.routers.sync import get_sync_engine
from presence_sync.services.connectivity import ConnectivityChecker
from presence_sync.services.remote_store import UNIQUE_VIOLATION, RemoteStore, RemoteStoreError
from presence_sync.services.sync_service import SyncEngine

REMOTE_EPOCH = "2026-01-01T00:00:00+00:00"


class FakeRemoteStore(RemoteStore):
    """
    Base distante en mémoire.
    UUID unique par table ; clé naturelle unique parmi les lignes non supprimées.
    `failures` contient des couples (table, méthode) qui lèvent une erreur réseau simulée.
    """

    UNIQUE_KEYS = {
        "offices": ("name",),
        "levels": ("name",),
        "students": ("name", "office_id", "level_id"),
        "attendance_records": ("date", "office_uuid", "level_uuid"),
    }

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._ids: Dict[str, int] = defaultdict(int)
        self.failures = set()
        self.calls = []

    # --- Outils de test ---

    def seed(self, table: str, **row) -> Dict[str, Any]:
        """Ajoute une ligne comme si un autre appareil l'avait envoyée."""
        self._ids[table] += 1
        row.setdefault("id", self._ids[table])
        if table != "student_attendances":
            row.setdefault("uuid", str(uuid.uuid4()))
            row.setdefault("deleted_at", None)
        row.setdefault("created_at", REMOTE_EPOCH)
        row.setdefault("updated_at", row["created_at"])
        self.tables[table].append(row)
        return row

    def rows(self, table: str, include_deleted: bool = False) -> List[Dict[str, Any]]:
        return [r for r in self.tables[table] if include_deleted or r.get("deleted_at") is None]

    def by_uuid(self, table: str, row_uuid) -> Optional[Dict[str, Any]]:
        return next((r for r in self.tables[table] if r.get("uuid") == str(row_uuid)), None)

    def _record(self, method: str, table: str) -> None:
        self.calls.append((method, table))
        if (table, method) in self.failures:
            raise RemoteStoreError(f"Panne simulée : {method} {table}")

    def _check_unique(self, table: str, row: Dict[str, Any]) -> None:
        key = self.UNIQUE_KEYS.get(table)
        for existing in self.tables[table]:
            if row.get("uuid") is not None and existing.get("uuid") == row["uuid"]:
                raise RemoteStoreError("duplicate key value violates unique constraint", code=UNIQUE_VIOLATION)
            if key and existing.get("deleted_at") is None and all(existing.get(k) == row.get(k) for k in key):
                raise RemoteStoreError("duplicate key value violates unique constraint", code=UNIQUE_VIOLATION)

    # --- Interface RemoteStore ---

    def select(self, table, deleted=False, columns="*"):
        self._record("select", table)
        rows = [dict(r) for r in self.tables[table] if (r.get("deleted_at") is not None) == deleted]
        if "offices(" in columns:
            for r in rows:
                r["offices"] = {"uuid": self._uuid_by_id("offices", r.get("office_id"))}
                r["levels"] = {"uuid": self._uuid_by_id("levels", r.get("level_id"))}
        if "student_attendances(" in columns:
            for r in rows:
                r["student_attendances"] = [
                    dict(c) for c in self.tables["student_attendances"]
                    if c["attendance_record_uuid"] == r["uuid"]
                ]
        return rows

    def _uuid_by_id(self, table, row_id):
        return next((r["uuid"] for r in self.tables[table] if r["id"] == row_id), None)

    def find_id_by_uuid(self, table, row_uuid):
        self._record("find_id_by_uuid", table)
        row = self.by_uuid(table, row_uuid)
        return row["id"] if row else None

    def insert(self, table, row):
        self._record("insert", table)
        self._check_unique(table, row)
        return dict(self.seed(table, **dict(row)))

    def insert_many(self, table, rows):
        self._record("insert_many", table)
        for row in rows:
            self.seed(table, **dict(row))

    def update_by_uuid(self, table, row_uuid, fields, only_active=False):
        self._record("update_by_uuid", table)
        for row in self.tables[table]:
            if row.get("uuid") == str(row_uuid) and not (only_active and row.get("deleted_at") is not None):
                row.update(fields)

    def delete_where(self, table, column, value):
        self._record("delete_where", table)
        self.tables[table] = [r for r in self.tables[table] if r.get(column) != value]


class FixedConnectivity(ConnectivityChecker):
    def __init__(self, connected: bool = True):
        self.connected = connected

    def is_connected(self) -> bool:
        return self.connected


@pytest.fixture
def store():
    local = LocalStore("sqlite://")
    local.create_schema()
    yield local
    local.dispose()


@pytest.fixture
def db(store):
    session = store.session()
    yield session
    session.close()


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def connectivity():
    return FixedConnectivity(True)


@pytest.fixture
def engine(store, remote, connectivity):
    return SyncEngine(store, remote, connectivity)


@pytest.fixture
def client(store, engine):
    """Client HTTP de test branché sur le magasin en mémoire (lifespan non exécuté)."""
    def override_db():
        session = store.session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_sync_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()
