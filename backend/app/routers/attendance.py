"""
Router du registre de présences.
Marquage et correction par l'enseignant propriétaire du cours, consultation de l'historique.
"""

import uuid
import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.attendance import (
    AttendanceMark,
    AttendanceMarkResult,
    AttendanceResponse,
    AttendanceUpdate,
    DateRange,
)
from app.security import CallerContext, Role, get_caller, require_teacher
from app.services import attendance_guard, attendance_service

router = APIRouter(prefix="/api/v1/attendance", tags=["Présences"])


@router.post(
    "/mark",
    response_model=AttendanceMarkResult,
    status_code=201,
    summary="Marquer une présence",
)
def mark_attendance(
    data: AttendanceMark,
    response: Response,
    caller: CallerContext = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    """
    Enregistre la présence d'un élève pour un cours et un jour.

    - 201 si la présence est nouvelle, 200 si elle remplace la précédente du même jour
    - 403 si l'enseignant n'est pas responsable du cours (rien n'est écrit)
    - 404 si l'élève ou le cours est introuvable
    """
    result = attendance_service.mark_attendance(db, data, caller)
    if not result.created:
        response.status_code = 200
    return result


@router.put(
    "/{record_id}",
    response_model=AttendanceResponse,
    summary="Corriger une présence",
)
def update_attendance(
    record_id: uuid.UUID,
    data: AttendanceUpdate,
    caller: CallerContext = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    """Corrige statut et remarque. Réservé à l'enseignant qui a marqué la présence."""
    return attendance_service.update_attendance(db, record_id, data, caller)


@router.get(
    "/me",
    response_model=List[AttendanceResponse],
    summary="Mes présences (élève)",
)
def my_attendance(
    course_id: Optional[uuid.UUID] = None,
    start_date: Optional[dt.date] = Query(None),
    end_date: Optional[dt.date] = Query(None),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Historique de l'élève connecté, du plus récent au plus ancien."""
    if caller.role != Role.STUDENT:
        raise HTTPException(status_code=403, detail="Accès réservé aux élèves.")
    return attendance_service.get_for_student(
        db, caller.caller_id, course_id, DateRange(start=start_date, end=end_date)
    )


@router.get(
    "/student/{student_id}",
    response_model=List[AttendanceResponse],
    summary="Présences d'un élève",
)
def student_attendance(
    student_id: uuid.UUID,
    course_id: Optional[uuid.UUID] = None,
    start_date: Optional[dt.date] = Query(None),
    end_date: Optional[dt.date] = Query(None),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Un élève ne voit que ses propres présences ; enseignants et admins voient tout."""
    attendance_guard.ensure_can_read_student(caller, student_id)
    return attendance_service.get_for_student(
        db, student_id, course_id, DateRange(start=start_date, end=end_date)
    )


@router.get(
    "/course/{course_id}",
    response_model=List[AttendanceResponse],
    summary="Présences d'un cours",
)
def course_attendance(
    course_id: uuid.UUID,
    start_date: Optional[dt.date] = Query(None),
    end_date: Optional[dt.date] = Query(None),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Historique complet d'un cours. Réservé à l'enseignant responsable (ou admin)."""
    return attendance_service.get_for_course(
        db, course_id, DateRange(start=start_date, end=end_date), caller=caller
    )
