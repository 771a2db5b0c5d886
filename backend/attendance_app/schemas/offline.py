"""
Schémas Pydantic côté client pour le mode hors-ligne.

Une intention hors-ligne est un scan QR réussi mais pas encore confirmé par le serveur,
stocké localement (SQLite) jusqu'à son rejeu.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class OfflineCheckInIntent(BaseModel):
    """Scan QR capturé sans réseau : { sessionId, qrToken, scannedAt, expiresAt }."""
    session_id: uuid.UUID
    qr_token: str
    scanned_at: datetime               # Heure de capture côté client
    expires_at: datetime               # Copie de l'expiration lue dans le QR (contrôle local)
    student_id: Optional[uuid.UUID] = None   # Étudiant connecté au moment du scan


class QueuedCheckIn(OfflineCheckInIntent):
    """Intention persistée, avec son identifiant local et son état de rejeu."""
    local_id: int
    attempts: int = 0
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None


class ReconcileReport(BaseModel):
    """Bilan d'un passage de réconciliation."""
    attempted: int = 0
    accepted: int = 0
    duplicate: int = 0        # Déjà enregistré par un autre canal : équivalent à un succès
    discarded: int = 0        # Session introuvable : rien à rejouer
    rejected: int = 0         # Refus du serveur (expirée, invalide) : reste en file avec backoff
    deferred: int = 0         # Échec transitoire : reste en file avec backoff
    not_due: int = 0          # Backoff en cours, non tenté
    remaining: int = 0


class ScanResult(BaseModel):
    """Issue d'un scan côté client : enregistré, mis en file, ou refusé."""
    ok: bool
    queued: bool = False
    error: Optional[str] = None
    detail: Optional[str] = None
