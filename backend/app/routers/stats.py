"""
Router des statistiques de présence (tableau de bord enseignant).
Tout est recalculé à la demande depuis le registre : aucun cache.
"""

import uuid
import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.schemas.attendance import DateRange
from app.schemas.stats import (
    CourseBreakdown,
    CourseStudentsReport,
    DailySnapshot,
    DashboardStats,
    TrendResponse,
)
from app.security import CallerContext, get_caller, require_teacher
from app.services import attendance_stats

router = APIRouter(prefix="/api/v1/attendance/stats", tags=["Statistiques"])


@router.get("", response_model=DashboardStats, summary="Tableau de bord des présences")
def dashboard(
    caller: CallerContext = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    """
    Regroupe pour l'enseignant connecté :
    - la photo du jour (présents, absents, inscrits, pourcentage)
    - les tendances sur 7 et 30 jours
    - les derniers marquages sur ses cours
    """
    return attendance_stats.dashboard_stats(db, caller.caller_id)


@router.get("/daily", response_model=DailySnapshot, summary="Présences d'une journée")
def daily(
    date: Optional[dt.date] = Query(None, description="Jour (YYYY-MM-DD), aujourd'hui par défaut"),
    caller: CallerContext = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    return attendance_stats.daily_snapshot(db, caller.caller_id, date)


@router.get("/trend", response_model=TrendResponse, summary="Tendance présents / absents")
def trend(
    window_days: int = Query(settings.TREND_WEEK_DAYS, ge=0, le=settings.MAX_TREND_WINDOW_DAYS),
    end_date: Optional[dt.date] = Query(None),
    caller: CallerContext = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    """Une entrée par jour de [end_date - window_days, end_date], jours vides à zéro."""
    return attendance_stats.trend(db, caller.caller_id, window_days, end_date)


@router.get("/courses", response_model=List[CourseBreakdown], summary="Bilan par cours")
def courses(
    start_date: Optional[dt.date] = Query(None),
    end_date: Optional[dt.date] = Query(None),
    caller: CallerContext = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    """Sans période : toutes les présences depuis l'origine."""
    return attendance_stats.course_breakdown(
        db, caller.caller_id, DateRange(start=start_date, end=end_date)
    )


@router.get(
    "/courses/{course_id}/students",
    response_model=CourseStudentsReport,
    summary="Bilan par élève d'un cours",
)
def course_students(
    course_id: uuid.UUID,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Réservé à l'enseignant responsable du cours (ou admin)."""
    return attendance_stats.student_breakdown(db, caller, course_id)
