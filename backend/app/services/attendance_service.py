"""
Registre de présences : une seule présence par (élève, cours, date).

Stratégie d'écriture : upsert atomique
- La date est ramenée au jour UTC avant toute lecture ou écriture
- Le garde d'autorisation passe AVANT le registre : un refus n'écrit rien
- INSERT ... ON CONFLICT (élève, cours, date) DO UPDATE en une seule requête :
  deux marquages concurrents sur la même clé se sérialisent dans PostgreSQL,
  le dernier à terminer gagne (last-write-wins), jamais de doublon
- Aucun historique : la mise à jour écrase statut, remarque et auteur
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, literal_column, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import apply_statement_timeout, storage_errors
from app.exceptions import InternalError, InvalidArgumentError, NotFoundError
from app.models.attendance import UNIQUE_DAY_CONSTRAINT, AttendanceRecord, AttendanceStatus
from app.schemas.attendance import (
    AttendanceMark,
    AttendanceMarkResult,
    AttendanceResponse,
    AttendanceUpdate,
    DateRange,
    normalize_day,
)
from app.security import CallerContext
from app.services import attendance_guard, course_directory

logger = logging.getLogger(__name__)


def mark_attendance(
    db: Session,
    data: AttendanceMark,
    caller: CallerContext,
    timeout_ms: Optional[int] = None,
) -> AttendanceMarkResult:
    """
    Crée ou met à jour la présence d'un élève pour un cours et un jour.

    Étapes :
    1. Normalise la date (jour UTC) et valide le statut
    2. Vérifie que le cours existe et que l'appelant en est propriétaire
    3. Vérifie que l'élève existe
    4. Upsert atomique sur la clé unique ; `created` dit si la ligne est nouvelle

    Une IntegrityError (clé concurrente, élève supprimé entre-temps) est rejouée
    une fois, puis remontée en InternalError.
    """
    day = normalize_day(data.date)
    status = _check_status(data.status)

    with storage_errors(db, "le marquage de présence"):
        apply_statement_timeout(db, timeout_ms)

        owner_id = course_directory.owner_of(db, data.course_id)
        attendance_guard.ensure_can_write(caller, owner_id)
        course_directory.get_student(db, data.student_id)

        statement = _upsert_statement(
            student_id=data.student_id,
            course_id=data.course_id,
            day=day,
            status=status,
            remarks=data.remarks,
            marked_by=caller.caller_id,
        )
        row = None
        for attempt in (1, 2):
            try:
                row = dict(db.execute(statement).mappings().one())
                db.commit()
                break
            except IntegrityError as exc:
                db.rollback()
                if attempt == 2:
                    logger.error("Upsert en conflit après nouvel essai : %s", exc)
                    raise InternalError("Impossible d'enregistrer la présence.") from exc
                logger.warning(
                    "Conflit sur (%s, %s, %s), nouvel essai",
                    data.student_id, data.course_id, day,
                )
                apply_statement_timeout(db, timeout_ms)

    created = bool(row.pop("created"))
    record = AttendanceResponse.model_validate(row)

    logger.info(
        "Présence %s : élève %s, cours %s, %s → %s (par %s)",
        "créée" if created else "mise à jour",
        record.student_id, record.course_id, record.date, record.status, record.marked_by,
    )
    return AttendanceMarkResult(record=record, created=created)


def update_attendance(
    db: Session,
    record_id: uuid.UUID,
    data: AttendanceUpdate,
    caller: CallerContext,
    timeout_ms: Optional[int] = None,
) -> AttendanceResponse:
    """
    Corrige une présence existante par son id.

    La ligne est verrouillée (SELECT ... FOR UPDATE) pour ne pas croiser un marquage
    concurrent. Refusé si l'appelant n'est pas l'auteur du marquage, ou s'il n'est
    plus propriétaire du cours. L'auteur (marked_by) ne change donc jamais ici.
    """
    status = _check_status(data.status)

    with storage_errors(db, "la correction de présence"):
        apply_statement_timeout(db, timeout_ms)

        record = db.get(AttendanceRecord, record_id, with_for_update=True)
        if record is None:
            raise NotFoundError(f"Présence {record_id} introuvable.")

        attendance_guard.ensure_is_marker(caller, record.marked_by)
        owner_id = course_directory.owner_of(db, record.course_id)
        attendance_guard.ensure_can_write(caller, owner_id)

        record.status = status
        record.remarks = data.remarks
        record.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(record)

    logger.info("Présence %s corrigée → %s (par %s)", record_id, status, caller.caller_id)
    return AttendanceResponse.model_validate(record)


def get_for_student(
    db: Session,
    student_id: uuid.UUID,
    course_id: Optional[uuid.UUID] = None,
    date_range: Optional[DateRange] = None,
    timeout_ms: Optional[int] = None,
) -> List[AttendanceResponse]:
    """Historique d'un élève (optionnellement pour un cours), du plus récent au plus ancien."""
    date_range = check_range(date_range)

    with storage_errors(db, "la lecture des présences de l'élève"):
        apply_statement_timeout(db, timeout_ms)

        query = select(AttendanceRecord).where(AttendanceRecord.student_id == student_id)
        if course_id is not None:
            query = query.where(AttendanceRecord.course_id == course_id)
        query = filter_range(query, date_range)

        records = db.execute(
            query.order_by(AttendanceRecord.date.desc(), AttendanceRecord.course_id)
        ).scalars().all()

    return [AttendanceResponse.model_validate(r) for r in records]


def get_for_course(
    db: Session,
    course_id: uuid.UUID,
    date_range: Optional[DateRange] = None,
    caller: Optional[CallerContext] = None,
    timeout_ms: Optional[int] = None,
) -> List[AttendanceResponse]:
    """
    Historique d'un cours, du plus récent au plus ancien.
    Si `caller` est fourni, seul le propriétaire (ou un admin) peut lire.
    """
    date_range = check_range(date_range)

    with storage_errors(db, "la lecture des présences du cours"):
        apply_statement_timeout(db, timeout_ms)

        owner_id = course_directory.owner_of(db, course_id)
        if caller is not None:
            attendance_guard.ensure_can_read_course(caller, owner_id)

        query = filter_range(
            select(AttendanceRecord).where(AttendanceRecord.course_id == course_id),
            date_range,
        )
        records = db.execute(
            query.order_by(
                AttendanceRecord.date.desc(),
                AttendanceRecord.student_id,
                AttendanceRecord.id,
            )
        ).scalars().all()

    return [AttendanceResponse.model_validate(r) for r in records]


def recent_for_courses(db: Session, course_ids: List[uuid.UUID], limit: int) -> List[AttendanceResponse]:
    """Derniers marquages sur un ensemble de cours (tableau de bord)."""
    if not course_ids:
        return []
    records = db.execute(
        select(AttendanceRecord)
        .where(AttendanceRecord.course_id.in_(course_ids))
        .order_by(AttendanceRecord.date.desc(), AttendanceRecord.updated_at.desc())
        .limit(limit)
    ).scalars().all()
    return [AttendanceResponse.model_validate(r) for r in records]


def check_range(date_range: Optional[DateRange]) -> Optional[DateRange]:
    """Rejette une période inversée ; une période vide vaut « pas de filtre »."""
    if date_range is None or date_range.is_empty:
        return None
    if date_range.start and date_range.end and date_range.start > date_range.end:
        raise InvalidArgumentError("La date de début doit précéder la date de fin.")
    return date_range


def _check_status(value) -> str:
    try:
        return AttendanceStatus(value).value
    except ValueError:
        allowed = [s.value for s in AttendanceStatus]
        raise InvalidArgumentError(f"Statut invalide. Valeurs acceptées : {allowed}")


def filter_range(query, date_range: Optional[DateRange]):
    if date_range is None:
        return query
    if date_range.start is not None:
        query = query.where(AttendanceRecord.date >= date_range.start)
    if date_range.end is not None:
        query = query.where(AttendanceRecord.date <= date_range.end)
    return query


def _upsert_statement(student_id, course_id, day, status, remarks, marked_by):
    """
    INSERT ... ON CONFLICT ON CONSTRAINT uq_attendance_student_course_date DO UPDATE.
    RETURNING renvoie la ligne finale ; (xmax = 0) n'est vrai que pour une insertion.
    """
    table = AttendanceRecord.__table__
    statement = pg_insert(table).values(
        id=uuid.uuid4(),
        student_id=student_id,
        course_id=course_id,
        date=day,
        status=status,
        remarks=remarks,
        marked_by=marked_by,
        created_at=func.now(),
        updated_at=func.now(),
    )
    statement = statement.on_conflict_do_update(
        constraint=UNIQUE_DAY_CONSTRAINT,
        set_={
            "status": statement.excluded.status,
            "remarks": statement.excluded.remarks,
            "marked_by": statement.excluded.marked_by,
            "updated_at": func.now(),
        },
    )
    return statement.returning(*table.c, literal_column("(xmax = 0)").label("created"))
