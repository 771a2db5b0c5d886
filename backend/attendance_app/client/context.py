"""
Contexte client explicite : identité de l'étudiant connecté sur l'appareil.

Cycle de vie : login → renseigné ; logout → vidé. Le contexte est injecté
dans le client et le réconciliateur, il n'y a pas d'état global.
"""

import logging
import threading
import uuid
from typing import Optional

from attendance_app.exceptions import AuthorizationError

logger = logging.getLogger(__name__)


class ClientContext:

    def __init__(self):
        self._lock = threading.Lock()
        self._student_id: Optional[uuid.UUID] = None
        self._full_name: Optional[str] = None

    def login(self, student_id: uuid.UUID, full_name: Optional[str] = None) -> None:
        with self._lock:
            self._student_id = student_id
            self._full_name = full_name
        logger.info("Contexte client : étudiant %s connecté", self.display_name)

    def logout(self) -> None:
        with self._lock:
            previous = self.display_name if self._student_id is not None else None
            self._student_id = None
            self._full_name = None
        if previous is not None:
            logger.info("Contexte client : étudiant %s déconnecté", previous)

    @property
    def student_id(self) -> Optional[uuid.UUID]:
        return self._student_id

    @property
    def full_name(self) -> Optional[str]:
        return self._full_name

    @property
    def display_name(self) -> str:
        """Nom et identifiant pour les journaux ; identifiant seul si le nom est inconnu."""
        if self._full_name:
            return f"{self._full_name} ({self._student_id})"
        return str(self._student_id)

    @property
    def is_authenticated(self) -> bool:
        return self._student_id is not None

    def require_student(self) -> uuid.UUID:
        """Identifiant de l'étudiant connecté ; AuthorizationError si personne n'est connecté."""
        student_id = self._student_id
        if student_id is None:
            raise AuthorizationError("Connexion requise.")
        return student_id
