"""
Tests unitaires des schémas du registre : normalisation de la date au jour UTC,
statut borné, remarques.
"""

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from app.exceptions import InvalidArgumentError
from app.models.attendance import AttendanceStatus
from app.schemas.attendance import AttendanceMark, AttendanceUpdate, normalize_day


def make_mark(**kwargs) -> AttendanceMark:
    payload = {
        "student_id": uuid.uuid4(),
        "course_id": uuid.uuid4(),
        "date": "2024-05-01",
        "status": "present",
    }
    payload.update(kwargs)
    return AttendanceMark(**payload)


# ============================================================
# normalize_day
# ============================================================

def test_normalize_date_inchangee():
    assert normalize_day(date(2024, 5, 1)) == date(2024, 5, 1)


def test_normalize_datetime_naif_tronque():
    """Un datetime sans fuseau est pris comme UTC : l'heure est ignorée."""
    assert normalize_day(datetime(2024, 5, 1, 23, 59, 59)) == date(2024, 5, 1)


def test_normalize_datetime_aware_converti_en_utc():
    """01/05 à 01h00 en UTC+2 = 30/04 à 23h00 UTC."""
    plus_two = timezone(timedelta(hours=2))
    assert normalize_day(datetime(2024, 5, 1, 1, 0, tzinfo=plus_two)) == date(2024, 4, 30)


def test_normalize_chaines_iso():
    assert normalize_day("2024-05-01") == date(2024, 5, 1)
    assert normalize_day("2024-05-01T08:30:00") == date(2024, 5, 1)
    assert normalize_day("2024-05-01T23:30:00Z") == date(2024, 5, 1)
    assert normalize_day("2024-05-01T23:30:00-02:00") == date(2024, 5, 2)


def test_normalize_deux_heures_meme_jour_collisionnent():
    """Deux marquages le même jour à des heures différentes → même clé."""
    assert normalize_day("2024-05-01T08:00:00Z") == normalize_day("2024-05-01T17:45:00Z")


@pytest.mark.parametrize("value", ["01/05/2024", "2024-13-01", "", "demain", 20240501, None])
def test_normalize_valeur_invalide(value):
    with pytest.raises(InvalidArgumentError):
        normalize_day(value)


# ============================================================
# AttendanceMark
# ============================================================

def test_mark_valide():
    mark = make_mark(remarks="  arrivé avec un mot  ")
    assert mark.date == date(2024, 5, 1)
    assert mark.status == AttendanceStatus.PRESENT
    assert mark.remarks == "arrivé avec un mot"


def test_mark_date_avec_heure_normalisee():
    mark = make_mark(date="2024-05-01T15:42:00+00:00")
    assert mark.date == date(2024, 5, 1)


def test_mark_statuts_valides():
    for status in ("present", "absent", "late"):
        assert make_mark(status=status).status.value == status


def test_mark_statut_invalide_rejete():
    with pytest.raises(ValidationError):
        make_mark(status="excused")


def test_mark_date_invalide_rejetee():
    with pytest.raises(ValidationError) as exc:
        make_mark(date="01/05/2024")
    assert "Date invalide" in str(exc.value)


def test_mark_remarque_vide_devient_none():
    assert make_mark(remarks="   ").remarks is None


def test_mark_remarque_trop_longue():
    with pytest.raises(ValidationError):
        make_mark(remarks="x" * 501)


def test_mark_champs_obligatoires():
    with pytest.raises(ValidationError):
        AttendanceMark(student_id=uuid.uuid4(), date="2024-05-01", status="present")


def test_update_statut_invalide_rejete():
    with pytest.raises(ValidationError):
        AttendanceUpdate(status="PRESENT")
