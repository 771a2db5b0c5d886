"""
Schémas Pydantic pour le rejeu groupé des check-ins hors-ligne.
Endpoint : POST /api/sync/checkins
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from attendance_app.config import settings


class OfflineCheckInItem(BaseModel):
    """Un scan QR capturé sans réseau sur l'appareil de l'étudiant."""

    local_id: Optional[int] = None     # Identifiant local de la file d'attente (écho dans le rapport)
    session_id: uuid.UUID
    qr_token: str
    scanned_at: datetime               # Timestamp local au moment du scan (avant réseau)


class SyncRequest(BaseModel):
    """Corps de la requête de rejeu groupé, pour un seul étudiant."""

    student_id: uuid.UUID
    items: List[OfflineCheckInItem]
    device_id: str = ""

    @field_validator("items")
    @classmethod
    def items_not_too_large(cls, v: List[OfflineCheckInItem]) -> List[OfflineCheckInItem]:
        if len(v) > settings.MAX_SYNC_BATCH_SIZE:
            raise ValueError(f"Batch trop grand : maximum {settings.MAX_SYNC_BATCH_SIZE} check-ins par requête.")
        return v


class SyncItemResult(BaseModel):
    session_id: uuid.UUID
    local_id: Optional[int] = None
    outcome: str                       # accepted, duplicate, not_found, expired, validation


class SyncResponse(BaseModel):
    """Rapport de rejeu retourné par le serveur."""

    results: List[SyncItemResult]
    total_received: int
    total_inserted: int
    total_duplicate: int
