"""
Moteur d'agrégation des présences (tableau de bord enseignant).

Deux couches :
- fonctions pures (summarize_day, build_trend, summarize_course, ...) qui travaillent
  sur des lignes déjà groupées en mémoire : testables sans base
- fonctions « base » qui poussent le GROUP BY en SQL puis délèguent aux fonctions pures

Chaque appel « base » lit un seul instantané (REPEATABLE READ). Lecture seule :
soit le calcul est complet, soit une erreur est levée, jamais de série tronquée.
Un retard de marquage (statut 'late') n'entre ni dans present ni dans absent des tendances.
"""

import time
import uuid
import logging
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from app.config import settings
from app.database import apply_statement_timeout, begin_snapshot, storage_errors
from app.exceptions import InvalidArgumentError
from app.models.attendance import AttendanceRecord, AttendanceStatus
from app.models.course import CourseStudent
from app.schemas.attendance import DateRange, normalize_day
from app.schemas.stats import (
    CourseBreakdown,
    CourseStudentsReport,
    DailySnapshot,
    DashboardStats,
    StudentAttendanceSummary,
    TrendPoint,
    TrendResponse,
)
from app.security import CallerContext
from app.services import attendance_guard, attendance_service, course_directory

logger = logging.getLogger(__name__)

PRESENT = AttendanceStatus.PRESENT.value
ABSENT = AttendanceStatus.ABSENT.value
LATE = AttendanceStatus.LATE.value


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


# ============================================================
# Fonctions pures
# ============================================================

def percentage(part: int, whole: int) -> float:
    """part / whole * 100 arrondi à 2 décimales ; 0 si whole est nul."""
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def summarize_day(day: date, status_counts: Mapping[str, int], total_students: int) -> DailySnapshot:
    """
    Photo d'une journée. `total_students` = inscrits distincts : un élève non marqué
    ne compte ni présent ni absent mais pèse dans le pourcentage.
    """
    present = status_counts.get(PRESENT, 0)
    return DailySnapshot(
        date=day,
        present=present,
        absent=status_counts.get(ABSENT, 0),
        total=total_students,
        percentage=percentage(present, total_students),
    )


def build_trend(grouped_rows: Iterable[Tuple], start: date, end: date) -> List[TrendPoint]:
    """
    Pivote des lignes (date, statut, nombre) en série quotidienne [start, end].

    Une entrée par jour, ordre chronologique, jours sans présence à zéro.
    Les lignes hors période sont ignorées.
    """
    if start > end:
        raise InvalidArgumentError("La date de début doit précéder la date de fin.")

    buckets = defaultdict(Counter)
    for raw_day, status, count in grouped_rows:
        day = normalize_day(raw_day)
        if start <= day <= end:
            buckets[day][status] += count

    series = []
    for offset in range((end - start).days + 1):
        day = start + timedelta(days=offset)
        counts = buckets.get(day, {})
        series.append(TrendPoint(
            date=day,
            present=counts.get(PRESENT, 0),
            absent=counts.get(ABSENT, 0),
        ))
    return series


def summarize_course(course, total_students: int, status_counts: Mapping[str, int]) -> CourseBreakdown:
    """Ligne par cours ; le pourcentage porte sur les séances marquées."""
    present = status_counts.get(PRESENT, 0)
    absent = status_counts.get(ABSENT, 0)
    late = status_counts.get(LATE, 0)
    return CourseBreakdown(
        course_id=course.id,
        name=course.name,
        code=course.code,
        total_students=total_students,
        present_count=present,
        absent_count=absent,
        late_count=late,
        percentage=percentage(present, present + absent + late),
    )


def summarize_student(student, status_counts: Mapping[str, int]) -> StudentAttendanceSummary:
    present = status_counts.get(PRESENT, 0)
    absent = status_counts.get(ABSENT, 0)
    late = status_counts.get(LATE, 0)
    total = present + absent + late
    return StudentAttendanceSummary(
        student_id=student.id,
        first_name=student.first_name,
        last_name=student.last_name,
        email=student.email,
        total=total,
        present=present,
        absent=absent,
        late=late,
        percentage=percentage(present, total),
    )


def trend_window(window_days: int, end_date=None) -> Tuple[date, date]:
    """[end - window_days, end], bornes incluses : window_days + 1 jours."""
    if window_days < 0 or window_days > settings.MAX_TREND_WINDOW_DAYS:
        raise InvalidArgumentError(
            f"Fenêtre invalide : entre 0 et {settings.MAX_TREND_WINDOW_DAYS} jours."
        )
    end = normalize_day(end_date) if end_date is not None else today_utc()
    return end - timedelta(days=window_days), end


# ============================================================
# Fonctions « base »
# ============================================================

def daily_snapshot(
    db: Session,
    teacher_id: uuid.UUID,
    day=None,
    timeout_ms: Optional[int] = None,
) -> DailySnapshot:
    """Présents / absents / inscrits sur tous les cours de l'enseignant pour un jour."""
    day = normalize_day(day) if day is not None else today_utc()

    with storage_errors(db, "le calcul de la journée"):
        course_ids = _open_teacher_snapshot(db, teacher_id, timeout_ms)
        return _daily(db, course_ids, day)


def trend(
    db: Session,
    teacher_id: uuid.UUID,
    window_days: int,
    end_date=None,
    timeout_ms: Optional[int] = None,
) -> TrendResponse:
    """Série quotidienne present/absent sur [end_date - window_days, end_date]."""
    start, end = trend_window(window_days, end_date)

    with storage_errors(db, "le calcul de la tendance"):
        course_ids = _open_teacher_snapshot(db, teacher_id, timeout_ms)
        series = _trend(db, course_ids, start, end)

    return TrendResponse(start_date=start, end_date=end, window_days=window_days, series=series)


def course_breakdown(
    db: Session,
    teacher_id: uuid.UUID,
    date_range: Optional[DateRange] = None,
    timeout_ms: Optional[int] = None,
) -> List[CourseBreakdown]:
    """
    Une ligne par cours de l'enseignant. Sans période : toutes les présences
    depuis l'origine ; avec période : seulement celles de la période.
    """
    date_range = attendance_service.check_range(date_range)

    with storage_errors(db, "le bilan par cours"):
        begin_snapshot(db)
        apply_statement_timeout(db, timeout_ms)
        course_directory.get_teacher(db, teacher_id)

        courses = course_directory.courses_owned_by(db, teacher_id)
        course_ids = [c.id for c in courses]
        if not course_ids:
            return []

        enrolled = course_directory.enrollment_counts(db, course_ids)
        query = (
            select(AttendanceRecord.course_id, AttendanceRecord.status, func.count())
            .where(AttendanceRecord.course_id.in_(course_ids))
        )
        query = attendance_service.filter_range(query, date_range)
        rows = db.execute(
            query.group_by(AttendanceRecord.course_id, AttendanceRecord.status)
        ).all()

    counts = defaultdict(Counter)
    for course_id, status, count in rows:
        counts[course_id][status] += count

    return [summarize_course(c, enrolled.get(c.id, 0), counts.get(c.id, {})) for c in courses]


def student_breakdown(
    db: Session,
    caller: CallerContext,
    course_id: uuid.UUID,
    timeout_ms: Optional[int] = None,
) -> CourseStudentsReport:
    """Bilan par élève inscrit à un cours (propriétaire ou admin uniquement)."""
    with storage_errors(db, "le bilan par élève"):
        begin_snapshot(db)
        apply_statement_timeout(db, timeout_ms)

        course = course_directory.get_course(db, course_id)
        attendance_guard.ensure_can_read_course(caller, course.teacher_id)

        students = course_directory.enrolled_student_rows(db, course_id)
        rows = db.execute(
            select(AttendanceRecord.student_id, AttendanceRecord.status, func.count())
            .where(AttendanceRecord.course_id == course_id)
            .group_by(AttendanceRecord.student_id, AttendanceRecord.status)
        ).all()

    counts = defaultdict(Counter)
    for student_id, status, count in rows:
        counts[student_id][status] += count

    return CourseStudentsReport(
        course_id=course.id,
        name=course.name,
        code=course.code,
        students=[summarize_student(s, counts.get(s.id, {})) for s in students],
    )


def dashboard_stats(
    db: Session,
    teacher_id: uuid.UUID,
    today=None,
    timeout_ms: Optional[int] = None,
) -> DashboardStats:
    """
    Charge utile complète du tableau de bord :
    photo du jour, tendances hebdomadaire et mensuelle, derniers marquages.
    Tout est lu dans le même instantané.
    """
    today = normalize_day(today) if today is not None else today_utc()
    started = time.perf_counter()

    with storage_errors(db, "le tableau de bord"):
        course_ids = _open_teacher_snapshot(db, teacher_id, timeout_ms)
        snapshot = _daily(db, course_ids, today)
        weekly = _trend(db, course_ids, today - timedelta(days=settings.TREND_WEEK_DAYS), today)
        monthly = _trend(db, course_ids, today - timedelta(days=settings.TREND_MONTH_DAYS), today)
        recent = attendance_service.recent_for_courses(db, course_ids, settings.RECENT_ATTENDANCE_LIMIT)

    logger.debug(
        "Tableau de bord enseignant %s : %d cours, %.1f ms",
        teacher_id, len(course_ids), (time.perf_counter() - started) * 1000,
    )

    return DashboardStats(
        date=today,
        total_courses=len(course_ids),
        total_students=snapshot.total,
        present_count=snapshot.present,
        absent_count=snapshot.absent,
        attendance_percentage=snapshot.percentage,
        weekly_trend=weekly,
        monthly_trend=monthly,
        recent_attendance=recent,
    )


def _open_teacher_snapshot(db: Session, teacher_id: uuid.UUID, timeout_ms: Optional[int]) -> List[uuid.UUID]:
    """Ouvre l'instantané, vérifie l'enseignant et retourne les ids de ses cours."""
    begin_snapshot(db)
    apply_statement_timeout(db, timeout_ms)
    course_directory.get_teacher(db, teacher_id)
    return [c.id for c in course_directory.courses_owned_by(db, teacher_id)]


def _daily(db: Session, course_ids: List[uuid.UUID], day: date) -> DailySnapshot:
    """
    Même unité au numérateur et au dénominateur : des élèves inscrits distincts.
    Un élève présent dans deux cours ne compte qu'une fois, un marquage hors inscription
    n'est pas compté : le pourcentage ne dépasse jamais 100.
    """
    total = course_directory.count_distinct_enrolled(db, course_ids)
    rows = []
    if course_ids:
        rows = db.execute(
            select(AttendanceRecord.status, func.count(func.distinct(AttendanceRecord.student_id)))
            .join(CourseStudent, and_(
                CourseStudent.course_id == AttendanceRecord.course_id,
                CourseStudent.student_id == AttendanceRecord.student_id,
            ))
            .where(
                AttendanceRecord.course_id.in_(course_ids),
                AttendanceRecord.date == day,
            )
            .group_by(AttendanceRecord.status)
        ).all()
    return summarize_day(day, {status: count for status, count in rows}, total)


def _trend(db: Session, course_ids: List[uuid.UUID], start: date, end: date) -> List[TrendPoint]:
    rows = []
    if course_ids:
        rows = db.execute(
            select(AttendanceRecord.date, AttendanceRecord.status, func.count())
            .where(
                AttendanceRecord.course_id.in_(course_ids),
                AttendanceRecord.date >= start,
                AttendanceRecord.date <= end,
            )
            .group_by(AttendanceRecord.date, AttendanceRecord.status)
        ).all()
    return build_trend(rows, start, end)
