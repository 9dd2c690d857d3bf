"""
Schémas Pydantic du registre de présences.

Note : on importe datetime en tant que module (dt) pour éviter le conflit de nommage
entre le champ `date` et le type `datetime.date` dans Pydantic v2.
"""

import uuid
import datetime as dt
from typing import Optional

from pydantic import BaseModel, field_validator

from app.exceptions import InvalidArgumentError
from app.models.attendance import AttendanceStatus

MAX_REMARKS_LENGTH = 500


def normalize_day(value) -> dt.date:
    """
    Ramène une date au jour calendaire UTC.

    - date            → inchangée
    - datetime aware  → convertie en UTC puis tronquée
    - datetime naïf   → considéré UTC, tronqué
    - str ISO 8601    → "YYYY-MM-DD" ou date-heure complète (suffixe Z accepté)

    Lève InvalidArgumentError pour toute autre valeur.
    """
    if isinstance(value, dt.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(dt.timezone.utc)
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        raw = value.strip()
        try:
            if len(raw) == 10:
                return dt.date.fromisoformat(raw)
            if raw.endswith("Z"):
                raw = raw[:-1] + "+00:00"
            return normalize_day(dt.datetime.fromisoformat(raw))
        except ValueError:
            raise InvalidArgumentError(f"Date invalide : '{value}' (format attendu YYYY-MM-DD).")
    raise InvalidArgumentError(f"Date invalide : {value!r}.")


def _clean_remarks(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if len(v) > MAX_REMARKS_LENGTH:
        raise ValueError(f"Remarque trop longue : maximum {MAX_REMARKS_LENGTH} caractères.")
    return v or None


class AttendanceMark(BaseModel):
    """Corps de POST /attendance/mark : une présence pour un élève, un cours, un jour."""

    student_id: uuid.UUID
    course_id: uuid.UUID
    date: dt.date
    status: AttendanceStatus
    remarks: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def date_to_day(cls, v) -> dt.date:
        try:
            return normalize_day(v)
        except InvalidArgumentError as e:
            raise ValueError(e.message)

    @field_validator("remarks")
    @classmethod
    def remarks_clean(cls, v: Optional[str]) -> Optional[str]:
        return _clean_remarks(v)


class AttendanceUpdate(BaseModel):
    """Corps de PUT /attendance/{id} : correction d'une présence existante."""

    status: AttendanceStatus
    remarks: Optional[str] = None

    @field_validator("remarks")
    @classmethod
    def remarks_clean(cls, v: Optional[str]) -> Optional[str]:
        return _clean_remarks(v)


class DateRange(BaseModel):
    """Filtre de période, bornes incluses. Chaque borne est facultative."""

    start: Optional[dt.date] = None
    end: Optional[dt.date] = None

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None


class AttendanceResponse(BaseModel):
    id: uuid.UUID
    student_id: uuid.UUID
    course_id: uuid.UUID
    date: dt.date
    status: str
    marked_by: uuid.UUID
    remarks: Optional[str]
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}


class AttendanceMarkResult(BaseModel):
    """Présence enregistrée + indicateur création (201) / mise à jour (200)."""

    record: AttendanceResponse
    created: bool
