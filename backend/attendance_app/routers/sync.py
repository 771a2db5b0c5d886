"""
Router pour le rejeu groupé des check-ins capturés hors-ligne.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from attendance_app.database import get_db
from attendance_app.schemas.sync import SyncRequest, SyncResponse
from attendance_app.services import sync_service

router = APIRouter(prefix="/api/sync", tags=["Synchronisation hors-ligne"])


@router.post(
    "/checkins",
    response_model=SyncResponse,
    summary="Rejouer des check-ins hors-ligne (offline → online)",
)
def sync_checkins(data: SyncRequest, db: Session = Depends(get_db)):
    """
    Reçoit les scans QR capturés hors-ligne par un étudiant et les admet un par un.

    Comportement :
    - Idempotent : un check-in déjà présent revient en `duplicate` (pas d'erreur)
    - Validation à l'heure de capture (scanned_at), pas à l'heure du rejeu
    - Un élément en échec n'empêche pas le traitement des suivants
    """
    return sync_service.sync_offline_checkins(db, data.student_id, data.items, data.device_id)
