"""
Client de la base distante (API REST PostgREST, telle qu'exposée par Supabase).

Le moteur de synchronisation ne dépend que de l'interface RemoteStore :
- select filtré sur deleted_at (actives / supprimées), avec relation embarquée optionnelle
- insert renvoyant la ligne créée (avec sa clé primaire distante)
- update par UUID, optionnellement limité aux lignes non supprimées
- delete filtré (statuts enfants d'une séance)

Toute erreur distante devient RemoteStoreError ; le code "23505" (violation de
contrainte unique PostgreSQL) est distingué pour la politique de déduplication.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class RemoteStoreError(Exception):
    """Erreur renvoyée par la base distante ou par le transport réseau (code None)."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION


class RemoteStore:
    """Interface de la base distante, adressable par nom de table."""

    def select(self, table: str, deleted: bool = False, columns: str = "*") -> List[Dict[str, Any]]:
        """Lignes actives (deleted_at IS NULL) ou supprimées (deleted_at IS NOT NULL)."""
        raise NotImplementedError

    def find_id_by_uuid(self, table: str, row_uuid: str) -> Optional[int]:
        raise NotImplementedError

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    def update_by_uuid(
        self, table: str, row_uuid: str, fields: Dict[str, Any], only_active: bool = False
    ) -> None:
        raise NotImplementedError

    def delete_where(self, table: str, column: str, value: Any) -> None:
        raise NotImplementedError


class RestRemoteStore(RemoteStore):
    """Implémentation httpx de RemoteStore sur /rest/v1/<table>."""

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + "/rest/v1",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, table: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, f"/{table}", **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"Erreur réseau sur {table} : {exc}") from exc

        if response.is_error:
            code, message = None, response.text
            try:
                body = response.json()
                code = body.get("code")
                message = body.get("message") or message
            except ValueError:
                pass
            logger.debug("Réponse distante %d sur %s %s : %s", response.status_code, method, table, message)
            raise RemoteStoreError(message, code=code)
        return response

    def select(self, table: str, deleted: bool = False, columns: str = "*") -> List[Dict[str, Any]]:
        params = {
            "select": columns,
            "deleted_at": "not.is.null" if deleted else "is.null",
            "order": "id.asc",
        }
        return self._request("GET", table, params=params).json()

    def find_id_by_uuid(self, table: str, row_uuid: str) -> Optional[int]:
        rows = self._request("GET", table, params={"select": "id", "uuid": f"eq.{row_uuid}"}).json()
        return rows[0]["id"] if rows else None

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        rows = self._request(
            "POST", table, json=row, headers={"Prefer": "return=representation"}
        ).json()
        return rows[0] if isinstance(rows, list) else rows

    def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> None:
        if rows:
            self._request("POST", table, json=rows, headers={"Prefer": "return=minimal"})

    def update_by_uuid(
        self, table: str, row_uuid: str, fields: Dict[str, Any], only_active: bool = False
    ) -> None:
        params = {"uuid": f"eq.{row_uuid}"}
        if only_active:
            params["deleted_at"] = "is.null"
        self._request("PATCH", table, params=params, json=fields, headers={"Prefer": "return=minimal"})

    def delete_where(self, table: str, column: str, value: Any) -> None:
        self._request("DELETE", table, params={column: f"eq.{value}"})
