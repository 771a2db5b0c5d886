"""
Réconciliation des check-ins hors-ligne avec le serveur.

Déclenchée au passage hors-ligne → en ligne et au démarrage. Les intentions de
l'étudiant connecté sont rejouées une par une (triées par session puis heure de
capture), avec une courte pause entre deux tentatives : deux intentions pour la
même session ne se concurrencent jamais.

Issue du rejeu → traitement :
- ok / duplicate       → retirée (duplicate = déjà enregistrée par un autre canal)
- not_found            → retirée sans erreur (session supprimée ou token changé)
- expired / validation → conservée (refus du serveur), backoff borné
- réseau / 5xx         → conservée, backoff borné (base · 2^tentatives, plafonné)
"""

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from attendance_app.client.context import ClientContext
from attendance_app.client.gateway import GatewayUnavailable
from attendance_app.client.offline_queue import OfflineQueue
from attendance_app.config import settings
from attendance_app.exceptions import Duplicate, Expired, NotFound, ValidationError
from attendance_app.schemas.checkin import CheckInResult
from attendance_app.schemas.offline import QueuedCheckIn, ReconcileReport

logger = logging.getLogger(__name__)

REFUSALS = {Expired.code, ValidationError.code}


class OfflineReconciler:

    def __init__(
        self,
        queue: OfflineQueue,
        gateway,
        context: ClientContext,
        delay_seconds: Optional[float] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._queue = queue
        self._gateway = gateway
        self._context = context
        self._delay = settings.RECONCILE_DELAY_SECONDS if delay_seconds is None else delay_seconds
        self._backoff_base = (
            settings.RECONCILE_BACKOFF_BASE_SECONDS if backoff_base_seconds is None else backoff_base_seconds
        )
        self._backoff_max = (
            settings.RECONCILE_BACKOFF_MAX_SECONDS if backoff_max_seconds is None else backoff_max_seconds
        )
        self._sleep = sleep
        self._running = threading.Lock()

    def reconcile(self, connectivity_available: bool, now: Optional[datetime] = None) -> ReconcileReport:
        """
        Rejoue les intentions en attente de l'étudiant connecté.
        Sans réseau, sans étudiant connecté, ou si un passage est déjà en cours : ne fait rien.
        """
        report = ReconcileReport()
        if not connectivity_available:
            return report
        student_id = self._context.student_id
        if student_id is None:
            logger.debug("Réconciliation ignorée : aucun étudiant connecté")
            return report
        if not self._running.acquire(blocking=False):
            logger.debug("Réconciliation déjà en cours")
            return report

        try:
            now = now or datetime.now(timezone.utc)
            pending = sorted(
                self._queue.list_pending(student_id=student_id),
                key=lambda item: (str(item.session_id), item.scanned_at),
            )
            first = True
            for item in pending:
                if item.next_attempt_at is not None and item.next_attempt_at > now:
                    report.not_due += 1
                    continue
                if not first:
                    self._sleep(self._delay)
                first = False

                report.attempted += 1
                try:
                    result = self._gateway.check_in_qr(
                        item.session_id,
                        item.qr_token,
                        student_id,
                        client_captured_at=item.scanned_at,
                    )
                except GatewayUnavailable as exc:
                    self._defer(item, str(exc), now)
                    report.deferred += 1
                    continue
                self._apply(item, result, report, now)

            report.remaining = self._queue.count(student_id=student_id)
        finally:
            self._running.release()

        if report.attempted:
            logger.info(
                "Réconciliation : %d tentés, %d acceptés, %d doublons, %d écartés, %d refusés, %d reportés",
                report.attempted, report.accepted, report.duplicate,
                report.discarded, report.rejected, report.deferred,
            )
        return report

    def _apply(self, item: QueuedCheckIn, result: CheckInResult, report: ReconcileReport, now: datetime) -> None:
        if result.ok:
            self._queue.dequeue(item.local_id)
            report.accepted += 1
        elif result.error == Duplicate.code:
            self._queue.dequeue(item.local_id)
            report.duplicate += 1
        elif result.error == NotFound.code:
            self._queue.dequeue(item.local_id)
            report.discarded += 1
            logger.info("Intention %s écartée : session %s introuvable", item.local_id, item.session_id)
        elif result.error in REFUSALS:
            # Refus du serveur : conservée, rejouée après backoff
            self._defer(item, f"{result.error}: {result.detail or ''}", now)
            report.rejected += 1
        else:
            self._defer(item, result.error or "erreur inconnue", now)
            report.deferred += 1

    def _defer(self, item: QueuedCheckIn, error: str, now: datetime) -> None:
        delay = min(self._backoff_base * (2 ** item.attempts), self._backoff_max)
        self._queue.record_failure(item.local_id, error, now + timedelta(seconds=delay))
        logger.warning(
            "Intention %s reportée de %.0f s (tentative %d) : %s",
            item.local_id, delay, item.attempts + 1, error,
        )
