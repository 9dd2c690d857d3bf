"""
Point d'entrée principal de l'API Campus (registre de présences).
Démarrage : uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import app.models  # noqa: F401 : enregistre tous les modèles dans Base.metadata avant les routers
from app.config import settings
from app.database import Base, engine
from app.exceptions import (
    AttendanceError,
    ConflictError,
    DeadlineExceededError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from app.routers import attendance, stats

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Du plus spécifique au plus général : DeadlineExceededError hérite d'InternalError
ERROR_STATUS_CODES = [
    (InvalidArgumentError, 400),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (DeadlineExceededError, 504),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cycle de vie : crée les tables en développement si AUTO_CREATE_TABLES est actif."""
    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
        logger.info("Tables créées (AUTO_CREATE_TABLES).")
    yield


app = FastAPI(
    title="Campus API",
    description="Registre de présences et statistiques du portail étudiants / enseignants",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : autorise tous les ports localhost en développement (à restreindre en production).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(attendance.router)
app.include_router(stats.router)


def status_code_for(exc: AttendanceError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(AttendanceError)
async def attendance_error_handler(request: Request, exc: AttendanceError) -> JSONResponse:
    """Traduit une erreur métier en réponse HTTP (le service ne connaît pas HTTP)."""
    status_code = status_code_for(exc)
    if status_code == 500:
        detail = "Une erreur interne est survenue."
    else:
        detail = exc.message
    return JSONResponse(status_code=status_code, content={"detail": detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour garantir que la réponse 500
    passe bien par CORSMiddleware (qui injecte les headers CORS).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "Campus API", "version": "0.1.0"}
