"""
Taxonomie des erreurs métier.

NotFound / Expired / Duplicate sont des issues attendues, présentées telles quelles
à l'étudiant. AuthorizationError est volontairement générique côté API.
"""


class AttendanceError(Exception):
    """Erreur métier de base. `code` est la valeur exposée dans les réponses JSON."""

    code = "error"
    status_code = 400
    default_message = "Une erreur est survenue."

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NotFound(AttendanceError):
    code = "not_found"
    status_code = 404
    default_message = "Session introuvable ou code invalide."


class Expired(AttendanceError):
    code = "expired"
    status_code = 410
    default_message = "Cette session a expiré."


class Duplicate(AttendanceError):
    code = "duplicate"
    status_code = 409
    default_message = "Vous êtes déjà enregistré pour cette session."


class AuthorizationError(AttendanceError):
    code = "forbidden"
    status_code = 403
    default_message = "Action non autorisée."


class ValidationError(AttendanceError, ValueError):
    code = "validation"
    status_code = 422
    default_message = "Requête invalide."


class ActiveSessionConflict(AttendanceError):
    """Une session non expirée est déjà active pour ce cours."""

    code = "active_session_exists"
    status_code = 409
    default_message = "Une session est déjà active pour ce cours."
