"""
Schémas Pydantic pour la liste des présents d'une session (vue enseignant).
Endpoint : GET /api/v1/sessions/{session_id}/attendees
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class Attendee(BaseModel):
    """Un check-in joint à l'identité de l'étudiant et à sa signature."""
    record_id: uuid.UUID
    student_id: uuid.UUID
    full_name: str
    matric_number: Optional[str]
    signature_url: Optional[str]        # None = pas d'image
    checked_in_at: datetime
    check_in_method: str
    synced_from_offline: bool
    offline_scanned_at: Optional[datetime]


class AttendeeList(BaseModel):
    session_id: uuid.UUID
    total: int
    attendees: List[Attendee]           # Triés par checked_in_at décroissant
