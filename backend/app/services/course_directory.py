"""
Annuaire des cours, en lecture seule.

Répond à deux questions pour le registre : qui est propriétaire d'un cours,
et quels élèves y sont inscrits. Le CRUD des cours se fait ailleurs.
"""

import uuid
import logging
from typing import Iterable, List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.exceptions import NotFoundError
from app.models.course import Course, CourseStudent
from app.models.student import Student
from app.models.user import User
from app.security import Role

logger = logging.getLogger(__name__)


def get_course(db: Session, course_id: uuid.UUID) -> Course:
    """Retourne le cours ou lève NotFoundError."""
    course = db.get(Course, course_id)
    if course is None:
        raise NotFoundError(f"Cours {course_id} introuvable.")
    return course


def owner_of(db: Session, course_id: uuid.UUID) -> uuid.UUID:
    """Identifiant de l'enseignant propriétaire du cours."""
    return get_course(db, course_id).teacher_id


def get_teacher(db: Session, teacher_id: uuid.UUID) -> User:
    """Retourne l'enseignant, ou lève NotFoundError s'il n'existe pas (ou n'est pas enseignant)."""
    teacher = db.get(User, teacher_id)
    if teacher is None or teacher.role != Role.TEACHER.value:
        raise NotFoundError(f"Enseignant {teacher_id} introuvable.")
    return teacher


def get_student(db: Session, student_id: uuid.UUID) -> Student:
    student = db.get(Student, student_id)
    if student is None:
        raise NotFoundError(f"Élève {student_id} introuvable.")
    return student


def courses_owned_by(db: Session, teacher_id: uuid.UUID) -> List[Course]:
    """Cours dont l'enseignant est propriétaire, triés par code."""
    return list(db.execute(
        select(Course)
        .where(Course.teacher_id == teacher_id)
        .order_by(Course.code)
    ).scalars().all())


def enrolled_students(db: Session, course_id: uuid.UUID) -> set:
    """
    Ensemble des identifiants d'élèves inscrits au cours.
    Contrat de l'annuaire exposé aux autres services du portail ; les agrégations
    passent par les compteurs ci-dessous pour rester en SQL.
    """
    return set(db.execute(
        select(CourseStudent.student_id)
        .where(CourseStudent.course_id == course_id)
    ).scalars().all())


def count_distinct_enrolled(db: Session, course_ids: Iterable[uuid.UUID]) -> int:
    """Nombre d'élèves distincts inscrits à au moins un des cours."""
    course_ids = list(course_ids)
    if not course_ids:
        return 0
    return db.execute(
        select(func.count(func.distinct(CourseStudent.student_id)))
        .where(CourseStudent.course_id.in_(course_ids))
    ).scalar() or 0


def enrollment_counts(db: Session, course_ids: Iterable[uuid.UUID]) -> dict:
    """{course_id: nombre d'inscrits} ; les cours sans inscrit sont absents du dict."""
    course_ids = list(course_ids)
    if not course_ids:
        return {}
    rows = db.execute(
        select(CourseStudent.course_id, func.count())
        .where(CourseStudent.course_id.in_(course_ids))
        .group_by(CourseStudent.course_id)
    ).all()
    return {course_id: count for course_id, count in rows}


def enrolled_student_rows(db: Session, course_id: uuid.UUID) -> List[Student]:
    """Élèves inscrits au cours, triés par nom puis prénom."""
    return list(db.execute(
        select(Student)
        .join(CourseStudent, CourseStudent.student_id == Student.id)
        .where(CourseStudent.course_id == course_id)
        .order_by(Student.last_name, Student.first_name)
    ).scalars().all())
