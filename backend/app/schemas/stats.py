"""
Schémas Pydantic des statistiques de présence (tableau de bord enseignant).
Rien n'est stocké : tout est recalculé depuis le registre à chaque appel.
"""

import uuid
import datetime as dt
from typing import List, Optional

from pydantic import BaseModel

from app.schemas.attendance import AttendanceResponse


class DailySnapshot(BaseModel):
    date: dt.date
    present: int
    absent: int
    total: int              # Élèves inscrits distincts, marqués ou non
    percentage: float


class TrendPoint(BaseModel):
    date: dt.date
    present: int
    absent: int


class TrendResponse(BaseModel):
    start_date: dt.date
    end_date: dt.date
    window_days: int
    series: List[TrendPoint]


class CourseBreakdown(BaseModel):
    course_id: uuid.UUID
    name: str
    code: str
    total_students: int
    present_count: int
    absent_count: int
    late_count: int
    percentage: float


class StudentAttendanceSummary(BaseModel):
    student_id: uuid.UUID
    first_name: str
    last_name: str
    email: Optional[str]
    total: int
    present: int
    absent: int
    late: int
    percentage: float


class CourseStudentsReport(BaseModel):
    course_id: uuid.UUID
    name: str
    code: str
    students: List[StudentAttendanceSummary]


class DashboardStats(BaseModel):
    """Charge utile de GET /attendance/stats."""
    date: dt.date
    total_courses: int
    total_students: int
    present_count: int
    absent_count: int
    attendance_percentage: float
    weekly_trend: List[TrendPoint]
    monthly_trend: List[TrendPoint]
    recent_attendance: List[AttendanceResponse]
