"""
Garde d'autorisation du registre de présences.

Fonctions de décision pures : aucune lecture en base, aucun état conservé.
La propriété du cours est relue à chaque appel par l'appelant (elle peut changer),
puis passée ici. Un refus lève ForbiddenError AVANT toute écriture.
"""

import uuid
import logging

from app.exceptions import ForbiddenError
from app.security import CallerContext

logger = logging.getLogger(__name__)


def ensure_can_write(caller: CallerContext, owner_id: uuid.UUID) -> None:
    """Écriture autorisée seulement pour l'enseignant propriétaire du cours."""
    if not caller.is_teacher or caller.caller_id != owner_id:
        logger.warning(
            "Écriture refusée : appelant %s (%s) n'est pas propriétaire (%s)",
            caller.caller_id, caller.role.value, owner_id,
        )
        raise ForbiddenError("Seul l'enseignant responsable du cours peut modifier ses présences.")


def ensure_is_marker(caller: CallerContext, marked_by: uuid.UUID) -> None:
    """Correction par id : réservée à l'enseignant qui a marqué la présence."""
    if not caller.is_teacher or caller.caller_id != marked_by:
        logger.warning(
            "Correction refusée : appelant %s n'a pas marqué cette présence (%s)",
            caller.caller_id, marked_by,
        )
        raise ForbiddenError("Vous n'êtes pas autorisé à modifier cette présence.")


def ensure_can_read_student(caller: CallerContext, student_id: uuid.UUID) -> None:
    """Un élève ne consulte que ses propres présences ; enseignants et admins, toutes."""
    if caller.is_teacher or caller.is_admin:
        return
    if caller.caller_id != student_id:
        raise ForbiddenError("Vous ne pouvez consulter que vos propres présences.")


def ensure_can_read_course(caller: CallerContext, owner_id: uuid.UUID) -> None:
    """Historique d'un cours : propriétaire ou administrateur."""
    if caller.is_admin:
        return
    if not caller.is_teacher or caller.caller_id != owner_id:
        raise ForbiddenError("Accès réservé à l'enseignant responsable du cours.")
