"""
Modèle SQLAlchemy du registre de présences.

Une seule ligne par (élève, cours, date) :
- la contrainte uq_attendance_student_course_date porte l'upsert atomique (ON CONFLICT)
- la date est stockée au jour près (UTC), jamais avec l'heure
- le statut est borné par une contrainte CHECK
"""

import enum
import uuid
from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Index, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base

UNIQUE_DAY_CONSTRAINT = "uq_attendance_student_course_date"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"


class AttendanceRecord(Base):
    """Présence d'un élève à un cours pour une journée donnée."""
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("student_id", "course_id", "date", name=UNIQUE_DAY_CONSTRAINT),
        CheckConstraint("status IN ('present', 'absent', 'late')", name="ck_attendance_status"),
        Index("idx_attendance_course_date", "course_id", "date"),
        Index("idx_attendance_student_date", "student_id", "date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)

    status = Column(String(10), nullable=False)       # present, absent, late
    marked_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    remarks = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
