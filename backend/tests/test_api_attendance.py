"""
Tests d'intégration API du registre de présences.
Testent les URLs, les codes HTTP, l'authentification et la traduction des erreurs métier.
"""

import uuid
from datetime import date, datetime, timezone
from unittest.mock import patch

from app.exceptions import (
    DeadlineExceededError,
    ForbiddenError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
)
from app.schemas.attendance import AttendanceMarkResult, AttendanceResponse
from app.security import Role, create_access_token

SERVICE = "app.routers.attendance.attendance_service"


# --- Helpers ---

def make_response(**kwargs) -> AttendanceResponse:
    now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    return AttendanceResponse(
        id=kwargs.get("id", uuid.uuid4()),
        student_id=kwargs.get("student_id", uuid.uuid4()),
        course_id=kwargs.get("course_id", uuid.uuid4()),
        date=kwargs.get("date", date(2024, 5, 1)),
        status=kwargs.get("status", "present"),
        marked_by=kwargs.get("marked_by", uuid.uuid4()),
        remarks=kwargs.get("remarks", None),
        created_at=now,
        updated_at=now,
    )


def mark_payload(**kwargs) -> dict:
    payload = {
        "student_id": str(uuid.uuid4()),
        "course_id": str(uuid.uuid4()),
        "date": "2024-05-01",
        "status": "present",
    }
    payload.update(kwargs)
    return payload


# ============================================================
# Authentification
# ============================================================

def test_sans_jeton_401(client):
    response = client.post("/api/v1/attendance/mark", json=mark_payload())
    assert response.status_code == 401


def test_jeton_invalide_401(client):
    response = client.get(
        "/api/v1/attendance/me",
        headers={"Authorization": "Bearer pas-un-jeton"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Jeton invalide."


def test_jeton_valide_resout_l_appelant(client):
    """Un vrai jeton signé suffit : l'identité est transmise au service."""
    student_id = uuid.uuid4()
    token = create_access_token(student_id, Role.STUDENT)

    with patch(f"{SERVICE}.get_for_student") as mock:
        mock.return_value = []
        response = client.get("/api/v1/attendance/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert mock.call_args[0][1] == student_id


# ============================================================
# POST /api/v1/attendance/mark
# ============================================================

def test_marquage_nouveau_201(client, as_caller, teacher):
    as_caller(teacher)
    with patch(f"{SERVICE}.mark_attendance") as mock:
        mock.return_value = AttendanceMarkResult(record=make_response(marked_by=teacher.caller_id), created=True)
        response = client.post("/api/v1/attendance/mark", json=mark_payload())

    assert response.status_code == 201
    assert response.json()["created"] is True
    assert response.json()["record"]["marked_by"] == str(teacher.caller_id)
    assert mock.call_args[0][2] == teacher


def test_marquage_existant_200(client, as_caller, teacher):
    as_caller(teacher)
    with patch(f"{SERVICE}.mark_attendance") as mock:
        mock.return_value = AttendanceMarkResult(record=make_response(status="absent"), created=False)
        response = client.post("/api/v1/attendance/mark", json=mark_payload(status="absent"))

    assert response.status_code == 200
    assert response.json()["created"] is False
    assert response.json()["record"]["status"] == "absent"


def test_marquage_par_eleve_403(client, as_caller, student):
    as_caller(student)
    with patch(f"{SERVICE}.mark_attendance") as mock:
        response = client.post("/api/v1/attendance/mark", json=mark_payload())
    assert response.status_code == 403
    mock.assert_not_called()


def test_marquage_statut_invalide_422(client, as_caller, teacher):
    as_caller(teacher)
    response = client.post("/api/v1/attendance/mark", json=mark_payload(status="excused"))
    assert response.status_code == 422


def test_marquage_date_invalide_422(client, as_caller, teacher):
    as_caller(teacher)
    response = client.post("/api/v1/attendance/mark", json=mark_payload(date="01/05/2024"))
    assert response.status_code == 422


def test_marquage_non_proprietaire_403(client, as_caller, teacher):
    as_caller(teacher)
    with patch(f"{SERVICE}.mark_attendance") as mock:
        mock.side_effect = ForbiddenError("Seul l'enseignant responsable du cours peut marquer les présences.")
        response = client.post("/api/v1/attendance/mark", json=mark_payload())

    assert response.status_code == 403
    assert "responsable" in response.json()["detail"]


def test_marquage_eleve_introuvable_404(client, as_caller, teacher):
    as_caller(teacher)
    with patch(f"{SERVICE}.mark_attendance") as mock:
        mock.side_effect = NotFoundError("Élève introuvable.")
        response = client.post("/api/v1/attendance/mark", json=mark_payload())
    assert response.status_code == 404


def test_marquage_delai_depasse_504(client, as_caller, teacher):
    as_caller(teacher)
    with patch(f"{SERVICE}.mark_attendance") as mock:
        mock.side_effect = DeadlineExceededError("Délai dépassé pendant le marquage de présence.")
        response = client.post("/api/v1/attendance/mark", json=mark_payload())
    assert response.status_code == 504


def test_marquage_erreur_interne_message_generique(client, as_caller, teacher):
    """Le détail du stockage n'est jamais renvoyé au client."""
    as_caller(teacher)
    with patch(f"{SERVICE}.mark_attendance") as mock:
        mock.side_effect = InternalError("Erreur de stockage pendant le marquage de présence.")
        response = client.post("/api/v1/attendance/mark", json=mark_payload())

    assert response.status_code == 500
    assert response.json()["detail"] == "Une erreur interne est survenue."


# ============================================================
# PUT /api/v1/attendance/{record_id}
# ============================================================

def test_correction_succes(client, as_caller, teacher):
    as_caller(teacher)
    record_id = uuid.uuid4()
    with patch(f"{SERVICE}.update_attendance") as mock:
        mock.return_value = make_response(id=record_id, status="late", remarks="bus")
        response = client.put(f"/api/v1/attendance/{record_id}", json={"status": "late", "remarks": "bus"})

    assert response.status_code == 200
    assert response.json()["status"] == "late"
    assert mock.call_args[0][1] == record_id


def test_correction_introuvable_404(client, as_caller, teacher):
    as_caller(teacher)
    with patch(f"{SERVICE}.update_attendance") as mock:
        mock.side_effect = NotFoundError("Présence introuvable.")
        response = client.put(f"/api/v1/attendance/{uuid.uuid4()}", json={"status": "absent"})
    assert response.status_code == 404


def test_correction_id_invalide_422(client, as_caller, teacher):
    as_caller(teacher)
    response = client.put("/api/v1/attendance/pas-un-uuid", json={"status": "absent"})
    assert response.status_code == 422


# ============================================================
# Lectures
# ============================================================

def test_mes_presences_eleve(client, as_caller, student):
    as_caller(student)
    with patch(f"{SERVICE}.get_for_student") as mock:
        mock.return_value = [make_response(student_id=student.caller_id)]
        response = client.get("/api/v1/attendance/me?start_date=2024-05-01&end_date=2024-05-31")

    assert response.status_code == 200
    assert len(response.json()) == 1
    date_range = mock.call_args[0][3]
    assert date_range.start == date(2024, 5, 1)
    assert date_range.end == date(2024, 5, 31)


def test_mes_presences_reserve_aux_eleves(client, as_caller, teacher):
    as_caller(teacher)
    response = client.get("/api/v1/attendance/me")
    assert response.status_code == 403


def test_presences_eleve_par_enseignant(client, as_caller, teacher):
    as_caller(teacher)
    student_id = uuid.uuid4()
    with patch(f"{SERVICE}.get_for_student") as mock:
        mock.return_value = []
        response = client.get(f"/api/v1/attendance/student/{student_id}")
    assert response.status_code == 200
    assert mock.call_args[0][1] == student_id


def test_presences_autre_eleve_refusees(client, as_caller, student):
    as_caller(student)
    with patch(f"{SERVICE}.get_for_student") as mock:
        response = client.get(f"/api/v1/attendance/student/{uuid.uuid4()}")
    assert response.status_code == 403
    mock.assert_not_called()


def test_presences_periode_inversee_400(client, as_caller, teacher):
    as_caller(teacher)
    with patch(f"{SERVICE}.get_for_student") as mock:
        mock.side_effect = InvalidArgumentError("La date de début doit précéder la date de fin.")
        response = client.get(
            f"/api/v1/attendance/student/{uuid.uuid4()}?start_date=2024-06-01&end_date=2024-05-01"
        )
    assert response.status_code == 400


def test_presences_cours(client, as_caller, teacher):
    as_caller(teacher)
    course_id = uuid.uuid4()
    with patch(f"{SERVICE}.get_for_course") as mock:
        mock.return_value = [make_response(course_id=course_id)]
        response = client.get(f"/api/v1/attendance/course/{course_id}")

    assert response.status_code == 200
    assert response.json()[0]["course_id"] == str(course_id)
    assert mock.call_args.kwargs["caller"] == teacher


def test_presences_cours_non_proprietaire_403(client, as_caller, teacher):
    as_caller(teacher)
    with patch(f"{SERVICE}.get_for_course") as mock:
        mock.side_effect = ForbiddenError("Accès refusé.")
        response = client.get(f"/api/v1/attendance/course/{uuid.uuid4()}")
    assert response.status_code == 403


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
