"""
Modèle SQLAlchemy de la file de synchronisation (outbox).

Chaque mutation locale non encore confirmée par la base distante y ajoute une entrée.
Le moteur de synchronisation lit les entrées par ordre FIFO (timestamp, id) et les
supprime une fois l'application distante confirmée.
"""

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text

from presence_sync.database import Base


class SyncQueueEntry(Base):
    __tablename__ = "sync_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity = Column(String(50), nullable=False)              # offices, levels, students, attendance_records
    entity_local_id = Column(Integer, nullable=True)
    entity_uuid = Column(String(36), nullable=False)
    entity_remote_id = Column(Integer, nullable=True)
    operation = Column(String(10), nullable=False)           # INSERT, UPDATE, DELETE
    payload = Column(JSON, nullable=False)                   # Instantané complet des champs (jamais un delta)
    timestamp = Column(DateTime, nullable=False)
    retry_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_sync_queue_entity", "entity"),
        Index("idx_sync_queue_timestamp", "timestamp"),
        Index("idx_sync_queue_operation", "operation"),
    )
