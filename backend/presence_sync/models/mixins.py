"""
Colonnes de suivi de synchronisation communes aux tables synchronisées.
"""

from sqlalchemy import Column, DateTime, Integer, String

from presence_sync.models.enums import SyncState


class SyncColumnsMixin:
    """
    remote_id : clé primaire attribuée par la base distante au premier envoi réussi.
    sync_state : synced / pending_insert / pending_update / pending_delete.
    """

    remote_id = Column(Integer, unique=True, nullable=True)
    sync_state = Column(String(20), nullable=False, default=SyncState.PENDING_INSERT.value)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    @property
    def last_modified_at(self):
        """max(updated_at, created_at) : horodatage comparé lors de la réconciliation."""
        if self.updated_at and self.created_at:
            return max(self.updated_at, self.created_at)
        return self.updated_at or self.created_at

    @property
    def is_synced(self) -> bool:
        return self.sync_state == SyncState.SYNCED.value
