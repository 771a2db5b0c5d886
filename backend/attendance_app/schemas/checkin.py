"""
Schémas Pydantic pour l'admission des check-ins (QR et PIN).
Endpoints : POST /api/v1/checkin/qr, POST /api/v1/checkin/pin

Un schéma par forme de requête : la validation est faite à la frontière,
avant d'atteindre le contrôleur d'admission.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class QrLookup(BaseModel):
    """Résolution d'une session par couple (id, token QR), indépendamment du flag actif."""
    session_id: uuid.UUID
    qr_token: str


class PinLookup(BaseModel):
    """Résolution d'une session par PIN seul, parmi les sessions actives."""
    pin_code: str


class QrCheckInRequest(BaseModel):
    """Check-in par QR. client_captured_at présent = rejeu d'un scan hors-ligne."""
    session_id: uuid.UUID
    qr_token: str
    student_id: uuid.UUID
    client_captured_at: Optional[datetime] = None

    @field_validator("qr_token")
    @classmethod
    def token_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le token QR ne peut pas être vide.")
        return v.strip()


class PinCheckInRequest(BaseModel):
    """Check-in par PIN à 6 chiffres."""
    pin_code: str
    student_id: uuid.UUID

    @field_validator("pin_code")
    @classmethod
    def pin_format(cls, v: str) -> str:
        v = v.strip()
        if len(v) != 6 or not v.isdigit():
            raise ValueError("Le PIN doit contenir exactement 6 chiffres.")
        return v


class CheckInResult(BaseModel):
    """Réponse d'admission : {ok: true} ou {ok: false, error: <code>, detail: <message>}."""
    ok: bool
    error: Optional[str] = None
    detail: Optional[str] = None
