"""
Configuration de la connexion à la base de données PostgreSQL.
Utilise SQLAlchemy avec un moteur synchrone : chaque requête HTTP a sa propre session.
"""

import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import settings
from app.exceptions import DeadlineExceededError, InternalError

logger = logging.getLogger(__name__)

# Code SQLSTATE PostgreSQL "query_canceled" (statement_timeout atteint)
PG_QUERY_CANCELED = "57014"

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dépendance FastAPI : fournit une session BDD et la ferme après usage."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def apply_statement_timeout(db: Session, timeout_ms: Optional[int]) -> None:
    """
    Borne la durée des requêtes de la transaction courante.
    SET LOCAL n'accepte pas de paramètre lié : la valeur est forcée en int.
    """
    if timeout_ms is None:
        timeout_ms = settings.DB_STATEMENT_TIMEOUT_MS
    if timeout_ms and timeout_ms > 0:
        db.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


def begin_snapshot(db: Session) -> None:
    """
    Ouvre la transaction en REPEATABLE READ pour qu'une agrégation lise
    un seul instantané du registre. Sans effet si une transaction est déjà ouverte.
    """
    if not db.in_transaction():
        db.connection(execution_options={"isolation_level": "REPEATABLE READ"})


@contextmanager
def storage_errors(db: Session, operation: str):
    """
    Traduit les erreurs SQLAlchemy en erreurs métier après rollback.
    Le détail du driver est journalisé, jamais renvoyé à l'appelant.
    """
    try:
        yield
    except OperationalError as exc:
        db.rollback()
        if getattr(exc.orig, "pgcode", None) == PG_QUERY_CANCELED:
            logger.warning("Délai dépassé pendant %s", operation)
            raise DeadlineExceededError(f"Délai dépassé pendant {operation}.") from exc
        logger.error("Erreur de stockage pendant %s : %s", operation, exc, exc_info=True)
        raise InternalError(f"Erreur de stockage pendant {operation}.") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Erreur de stockage pendant %s : %s", operation, exc, exc_info=True)
        raise InternalError(f"Erreur de stockage pendant {operation}.") from exc
