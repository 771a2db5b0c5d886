"""
Schémas Pydantic pour le cycle de vie des sessions de présence.
Endpoints : POST /api/v1/sessions, POST /api/v1/sessions/{id}/end,
GET /api/v1/courses/{course_id}/active-session
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from attendance_app.config import settings


class SessionCreate(BaseModel):
    """Données envoyées par l'enseignant pour ouvrir une session."""
    course_id: uuid.UUID
    session_name: str
    duration_minutes: int = settings.SESSION_DEFAULT_DURATION_MINUTES
    creator_id: uuid.UUID

    @field_validator("session_name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom de la session ne peut pas être vide.")
        return v.strip()

    @field_validator("duration_minutes")
    @classmethod
    def duration_in_range(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("La durée doit être strictement positive.")
        if v > settings.SESSION_MAX_DURATION_MINUTES:
            raise ValueError(f"La durée ne peut pas dépasser {settings.SESSION_MAX_DURATION_MINUTES} minutes.")
        return v


class SessionEnd(BaseModel):
    """Demande de clôture explicite d'une session."""
    requester_id: uuid.UUID


class SessionResponse(BaseModel):
    """Session telle que vue par l'enseignant (inclut token, PIN et payload QR encodé)."""
    id: uuid.UUID
    course_id: uuid.UUID
    session_name: str
    qr_token: str
    pin_code: str
    started_at: Optional[datetime]
    expires_at: datetime
    ended_at: Optional[datetime]
    is_active: bool
    created_by: Optional[uuid.UUID]
    qr_payload: Optional[str] = None   # Contenu du QR code affiché en classe

    model_config = {"from_attributes": True}
