"""
Contexte d'identité de l'appelant.

Le jeton Bearer est émis par le service d'authentification (hors périmètre).
Ici on se contente de le vérifier et d'en extraire {caller_id, role} :
aucune recherche d'utilisateur, aucun mot de passe.
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class Role(str, enum.Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


@dataclass(frozen=True)
class CallerContext:
    """Identité résolue transmise explicitement à chaque opération du registre."""
    caller_id: uuid.UUID
    role: Role

    @property
    def is_teacher(self) -> bool:
        return self.role == Role.TEACHER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def create_access_token(
    caller_id: uuid.UUID,
    role: Role,
    expires_minutes: Optional[int] = None,
) -> str:
    """Signe un jeton au format attendu par get_caller (outillage et tests)."""
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {
        "sub": str(caller_id),
        "role": Role(role).value,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> CallerContext:
    """
    Vérifie la signature et l'expiration, puis construit le contexte.
    Lève ValueError si le jeton est invalide ou incomplet.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise ValueError("Jeton expiré.")
    except jwt.InvalidTokenError:
        raise ValueError("Jeton invalide.")

    try:
        return CallerContext(caller_id=uuid.UUID(payload["sub"]), role=Role(payload["role"]))
    except (KeyError, TypeError, ValueError):
        raise ValueError("Jeton incomplet : 'sub' et 'role' sont requis.")


def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CallerContext:
    """Dépendance FastAPI : résout l'appelant depuis l'en-tête Authorization."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Authentification requise.")
    try:
        return decode_access_token(credentials.credentials)
    except ValueError as e:
        logger.info("Jeton refusé : %s", e)
        raise HTTPException(status_code=401, detail=str(e))


def require_teacher(caller: CallerContext = Depends(get_caller)) -> CallerContext:
    """Dépendance FastAPI : réservé aux enseignants."""
    if not caller.is_teacher:
        raise HTTPException(status_code=403, detail="Accès réservé aux enseignants.")
    return caller
