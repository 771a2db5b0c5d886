"""
Point d'entrée de l'API de présence universitaire.
Démarrage : uvicorn attendance_app.main:app --reload

Côté enseignant : ouverture/clôture de session, QR code, liste des présents.
Côté étudiant : check-in QR/PIN et rejeu groupé des scans hors-ligne.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import attendance_app.models  # noqa: F401  tables enregistrées avant la résolution des FK
from attendance_app.config import settings
from attendance_app.routers import checkin, sessions, sync
from attendance_app.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)

SERVICE_NAME = "Attendance API"
VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Le balayage des sessions expirées tourne tant que l'API est démarrée."""
    start_scheduler()
    logger.info("%s %s démarrée (env=%s)", SERVICE_NAME, VERSION, settings.ENV)
    yield
    stop_scheduler()


app = FastAPI(
    title=SERVICE_NAME,
    description="Sessions de présence par QR code ou PIN, avec check-in hors-ligne",
    version=VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Origines du client web : localhost par défaut, surchargé par CORS_ORIGIN_REGEX
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)

for module in (sessions, checkin, sync):
    app.include_router(module.router)
app.include_router(sessions.courses_router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Réponse 500 générique, passée par CORSMiddleware, sans détail interne."""
    logger.error("Exception non gérée sur %s : %s", request.url.path, exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": SERVICE_NAME, "version": VERSION}
