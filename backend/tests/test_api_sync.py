"""
Tests d'intégration API pour la synchronisation.
Endpoints : POST /api/sync, POST /api/sync/{target}, GET /api/sync/stats|status|pending
"""

from unittest.mock import patch

from presence_sync.schemas.sync import SyncResult
from presence_sync.services.sync_service import ALREADY_RUNNING_MESSAGE, OFFLINE_MESSAGE


# ============================================================
# POST /api/sync
# ============================================================

def test_sync_all(client, remote):
    client.post("/api/v1/offices", json={"name": "Center-A"})

    response = client.post("/api/sync")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["failed_count"] == 0
    assert [r["name"] for r in remote.rows("offices")] == ["Center-A"]
    assert client.get("/api/v1/offices").json()[0]["sync_state"] == "synced"


def test_sync_hors_ligne(client, connectivity):
    connectivity.connected = False

    response = client.post("/api/sync")

    assert response.status_code == 200
    assert response.json() == {
        "success": False, "message": OFFLINE_MESSAGE, "synced_count": 0, "failed_count": 0,
    }


def test_sync_deja_en_cours(client, engine):
    with patch.object(engine, "sync_all", return_value=SyncResult(success=False, message=ALREADY_RUNNING_MESSAGE)):
        response = client.post("/api/sync")

    assert response.json()["message"] == ALREADY_RUNNING_MESSAGE


# ============================================================
# POST /api/sync/{target}
# ============================================================

def test_sync_entity(client, remote):
    client.post("/api/v1/offices", json={"name": "A"})
    client.post("/api/v1/levels", json={"name": "CP"})

    response = client.post("/api/sync/levels")

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert len(remote.rows("levels")) == 1
    assert remote.rows("offices") == []


def test_sync_entity_cible_inconnue(client):
    assert client.post("/api/sync/bulletins").status_code == 422


# ============================================================
# GET /api/sync/stats, /status, /pending
# ============================================================

def test_stats(client):
    client.post("/api/v1/offices", json={"name": "A"})
    client.post("/api/v1/levels", json={"name": "CP"})

    data = client.get("/api/sync/stats").json()

    assert data["total"] == 2
    assert data["by_operation"] == {"INSERT": 2}


def test_status(client):
    client.post("/api/v1/offices", json={"name": "A"})

    data = client.get("/api/sync/status").json()

    assert data["in_progress"] is False
    assert data["is_connected"] is True
    assert data["unsynced_count"] == 1
    assert data["last_result"] is None


def test_pending(client):
    office = client.post("/api/v1/offices", json={"name": "A"}).json()
    client.post("/api/v1/levels", json={"name": "CP"})

    everything = client.get("/api/sync/pending").json()["entries"]
    only_offices = client.get("/api/sync/pending", params={"target": "offices"}).json()["entries"]

    assert [e["entity"] for e in everything] == ["offices", "levels"]
    assert [e["entity_uuid"] for e in only_offices] == [office["uuid"]]


def test_health(client):
    assert client.get("/api/health").json()["status"] == "ok"
