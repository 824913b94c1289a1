"""
Modèles SQLAlchemy pour les centres (offices) et les niveaux (levels).
Structure identique : nom unique parmi les lignes non supprimées, suppression logique.
"""

from sqlalchemy import Column, DateTime, Integer, String

from presence_sync.database import Base
from presence_sync.models.mixins import SyncColumnsMixin


class Office(SyncColumnsMixin, Base):
    """Centre d'enseignement."""
    __tablename__ = "offices"

    id = Column(Integer, primary_key=True, autoincrement=True)    # Identifiant local uniquement
    uuid = Column(String(36), unique=True, nullable=False, index=True)  # Identité stable inter-appareils
    name = Column(String(255), nullable=False)
    deleted_at = Column(DateTime, nullable=True)                  # NULL = ligne active


class Level(SyncColumnsMixin, Base):
    """Niveau scolaire."""
    __tablename__ = "levels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    deleted_at = Column(DateTime, nullable=True)
