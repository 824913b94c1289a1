"""
Planificateur APScheduler : synchronisation automatique au retour du réseau.

Le job interroge la connectivité à intervalle régulier et déclenche sync_all
lorsque l'état passe de hors-ligne à en ligne. Aucune autre reprise automatique :
les entrées en échec attendent le prochain déclenchement.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from presence_sync.services.sync_service import SyncEngine

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


class ReconnectWatcher:
    """Mémorise le dernier état de connectivité observé."""

    def __init__(self, engine: SyncEngine):
        self.engine = engine
        self.was_connected = True

    def __call__(self) -> None:
        try:
            connected = self.engine.connectivity.is_connected()
            if connected and not self.was_connected:
                logger.info("Connexion rétablie : synchronisation automatique")
                result = self.engine.sync_all()
                logger.info(
                    "Synchronisation automatique : %s (%d réussies, %d échouées)",
                    result.message, result.synced_count, result.failed_count,
                )
            self.was_connected = connected
        except Exception as exc:
            logger.error("Erreur du surveillant de connectivité : %s", exc)


def start_scheduler(engine: SyncEngine, interval_seconds: int = 30) -> None:
    """Démarre le planificateur en arrière-plan (appelé au démarrage de l'API)."""
    scheduler.add_job(
        ReconnectWatcher(engine),
        trigger="interval",
        seconds=interval_seconds,
        id="reconnect_sync",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler démarré : connectivité vérifiée toutes les %d secondes.", interval_seconds)


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
