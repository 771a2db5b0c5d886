"""
Service de rejeu groupé des check-ins hors-ligne → en ligne.

Stratégie :
- Chaque élément passe par le même contrôleur d'admission qu'un scan en direct
  (méthode offline_qr, heure de capture conservée)
- Traitement séquentiel, une transaction par élément : un doublon ou une session
  expirée n'annule pas les autres éléments du batch
- Idempotence : un élément déjà enregistré (par n'importe quel canal) revient en `duplicate`
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from attendance_app.exceptions import AttendanceError, Duplicate
from attendance_app.models.attendance_record import METHOD_OFFLINE_QR
from attendance_app.schemas.checkin import QrLookup
from attendance_app.schemas.sync import OfflineCheckInItem, SyncItemResult, SyncResponse
from attendance_app.services.checkin_service import admit_check_in

logger = logging.getLogger(__name__)

OUTCOME_ACCEPTED = "accepted"


def sync_offline_checkins(
    db: Session,
    student_id: uuid.UUID,
    items: List[OfflineCheckInItem],
    device_id: str = "",
    now: Optional[datetime] = None,
) -> SyncResponse:
    """
    Rejoue en séquence les scans hors-ligne d'un étudiant.

    Pour chaque élément :
    1. Résout la session par (session_id, qr_token)
    2. Admet le check-in à l'heure de capture
    3. Reporte l'issue : accepted, duplicate, not_found, expired ou validation
    """
    results: List[SyncItemResult] = []

    for item in items:
        try:
            admit_check_in(
                db,
                QrLookup(session_id=item.session_id, qr_token=item.qr_token),
                student_id,
                METHOD_OFFLINE_QR,
                client_captured_at=item.scanned_at,
                now=now,
            )
            outcome = OUTCOME_ACCEPTED
        except AttendanceError as exc:
            outcome = exc.code
            logger.debug("Rejeu session %s → %s", item.session_id, outcome)

        results.append(
            SyncItemResult(session_id=item.session_id, local_id=item.local_id, outcome=outcome)
        )

    inserted = sum(1 for r in results if r.outcome == OUTCOME_ACCEPTED)
    duplicates = sum(1 for r in results if r.outcome == Duplicate.code)

    logger.info(
        "Sync étudiant=%s device=%s : %d reçus, %d insérés, %d doublons",
        student_id, device_id or "inconnu", len(items), inserted, duplicates,
    )

    return SyncResponse(
        results=results,
        total_received=len(items),
        total_inserted=inserted,
        total_duplicate=duplicates,
    )
