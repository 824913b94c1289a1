"""
Base de données locale (SQLite) : moteur SQLAlchemy, sessions et transactions.

Le magasin local est un objet explicite (LocalStore) construit au démarrage
puis transmis aux composants qui en ont besoin : aucun moteur global.
"""

from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Portée transactionnelle sur une session existante.
    Commit en sortie normale, rollback puis relance de l'exception sinon.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


class LocalStore:
    """Handle du magasin local : possède le moteur et la fabrique de sessions."""

    def __init__(self, url: str):
        self.url = url
        kwargs = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            # Base en mémoire : une seule connexion partagée, sinon chaque session verrait une base vide
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, **kwargs)

        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_schema(self) -> None:
        """Crée les tables et index manquants (idempotent)."""
        import presence_sync.models  # noqa: F401  (enregistre les tables dans Base.metadata)

        Base.metadata.create_all(self.engine)

    def session(self) -> Session:
        return self._session_factory()

    @contextmanager
    def run_in_transaction(self) -> Iterator[Session]:
        """Ouvre une session, l'enveloppe dans une transaction et la ferme toujours."""
        db = self.session()
        try:
            with transaction(db):
                yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite n'applique les clés étrangères (et les CASCADE) que si le pragma est actif."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_db(request: Request):
    """Dépendance FastAPI : fournit une session du magasin local et la ferme après usage."""
    db = request.app.state.store.session()
    try:
        yield db
    finally:
        db.close()
