"""
Erreurs métier du registre de présences.

Les services ne connaissent pas HTTP : ils lèvent une de ces erreurs,
et main.py les traduit en code de réponse.
"""


class AttendanceError(Exception):
    """Base de toutes les erreurs métier."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgumentError(AttendanceError):
    """Date ou statut mal formé, fenêtre hors limites."""


class NotFoundError(AttendanceError):
    """Élève, cours, enseignant ou présence inexistant."""


class ForbiddenError(AttendanceError):
    """Refus du garde d'autorisation. Aucune écriture n'a eu lieu."""


class ConflictError(AttendanceError):
    """Collision sur la clé (élève, cours, date). Transitoire si l'upsert est atomique."""


class InternalError(AttendanceError):
    """Erreur de stockage ou inattendue."""


class DeadlineExceededError(InternalError):
    """La base a annulé l'opération : délai de l'appelant dépassé."""
