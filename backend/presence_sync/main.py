"""
Point d'entrée principal de l'API locale de synchronisation des présences.
Démarrage : uvicorn presence_sync.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from presence_sync.config import settings
from presence_sync.database import LocalStore
from presence_sync.routers import attendance, levels, offices, students, sync
from presence_sync.scheduler import start_scheduler, stop_scheduler
from presence_sync.services.connectivity import HttpConnectivityChecker
from presence_sync.services.remote_store import RestRemoteStore
from presence_sync.services.sync_service import SyncEngine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Cycle de vie de l'application : ouvre le magasin local, construit le moteur
    de synchronisation et démarre le surveillant de connectivité APScheduler.
    """
    store = LocalStore(settings.DATABASE_URL)
    store.create_schema()
    remote = RestRemoteStore(
        settings.REMOTE_URL,
        api_key=settings.REMOTE_API_KEY,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
    )
    connectivity = HttpConnectivityChecker(
        settings.CONNECTIVITY_CHECK_URL, timeout=settings.CONNECTIVITY_TIMEOUT_SECONDS
    )
    engine = SyncEngine(store, remote, connectivity)

    app.state.store = store
    app.state.sync_engine = engine
    if settings.AUTO_SYNC_ENABLED:
        start_scheduler(engine, interval_seconds=settings.CONNECTIVITY_POLL_SECONDS)

    yield

    stop_scheduler()
    remote.close()
    store.dispose()


app = FastAPI(
    title="Presence Sync API",
    description="API locale de gestion des présences (offline-first, synchronisée avec la base distante)",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : l'interface tourne sur localhost en développement
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(offices.router)
app.include_router(levels.router)
app.include_router(students.router)
app.include_router(attendance.router)
app.include_router(sync.router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour que la réponse 500
    passe par CORSMiddleware (qui injecte les headers CORS).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "Presence Sync API", "version": "0.1.0"}
