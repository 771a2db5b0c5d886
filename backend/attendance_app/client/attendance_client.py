"""
Client de check-in de l'étudiant : scan QR, saisie de PIN, mode hors-ligne.

- Scan QR : décodage, contrôle local d'expiration, puis envoi direct si en ligne,
  sinon mise en file hors-ligne avec l'heure de capture
- PIN : uniquement en ligne (pas de mise en file)
- Connectivité : le retour en ligne déclenche une réconciliation ; une réconciliation
  opportuniste a lieu au démarrage, et optionnellement à intervalle fixe (APScheduler)
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from attendance_app.client.context import ClientContext
from attendance_app.client.gateway import GatewayUnavailable
from attendance_app.client.offline_queue import OfflineQueue
from attendance_app.client.reconciler import OfflineReconciler
from attendance_app.config import settings
from attendance_app.exceptions import Expired
from attendance_app.schemas.checkin import CheckInResult
from attendance_app.schemas.offline import OfflineCheckInIntent, ReconcileReport, ScanResult
from attendance_app.services import token_service

logger = logging.getLogger(__name__)

INVALID_QR = "invalid_qr"
OFFLINE = "offline"

QUEUED_MESSAGE = "Présence enregistrée hors-ligne. Elle sera synchronisée au retour du réseau."


class AttendanceClient:

    def __init__(
        self,
        context: ClientContext,
        queue: OfflineQueue,
        gateway,
        reconciler: Optional[OfflineReconciler] = None,
        online: bool = True,
    ):
        self.context = context
        self.queue = queue
        self.gateway = gateway
        self.reconciler = reconciler or OfflineReconciler(queue, gateway, context)
        self._online = online
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def online(self) -> bool:
        return self._online

    def start(self) -> ReconcileReport:
        """Réconciliation opportuniste au démarrage, puis planification éventuelle."""
        if settings.RECONCILE_INTERVAL_SECONDS > 0 and self._scheduler is None:
            self._scheduler = BackgroundScheduler()
            self._scheduler.add_job(
                self._reconcile_scheduled,
                trigger="interval",
                seconds=settings.RECONCILE_INTERVAL_SECONDS,
                id="offline_checkin_reconcile",
                replace_existing=True,
            )
            self._scheduler.start()
            logger.info("Réconciliation planifiée toutes les %d s", settings.RECONCILE_INTERVAL_SECONDS)
        return self.reconciler.reconcile(self._online)

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None

    def set_online(self, online: bool) -> Optional[ReconcileReport]:
        """Met à jour la connectivité ; le passage hors-ligne → en ligne déclenche la réconciliation."""
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("Connectivité retrouvée : réconciliation des check-ins hors-ligne")
            return self.reconciler.reconcile(True)
        return None

    def pending_count(self) -> int:
        """Nombre d'intentions en attente pour l'étudiant connecté (indicateur « en attente »)."""
        student_id = self.context.student_id
        if student_id is None:
            return 0
        return self.queue.count(student_id=student_id)

    def scan_qr(self, raw: str, now: Optional[datetime] = None) -> ScanResult:
        """Traite le contenu d'un QR code scanné par l'étudiant connecté."""
        student_id = self.context.require_student()
        now = now or datetime.now(timezone.utc)

        payload = token_service.decode_session_payload(raw)
        if payload is None:
            return ScanResult(ok=False, error=INVALID_QR, detail="QR code invalide.")
        if token_service.is_payload_expired(payload, now):
            return ScanResult(ok=False, error=Expired.code, detail=Expired.default_message)

        intent = OfflineCheckInIntent(
            session_id=payload.session_id,
            qr_token=payload.qr_token,
            scanned_at=now,
            expires_at=payload.expires_at,
            student_id=student_id,
        )
        if not self._online:
            return self._enqueue(intent)

        try:
            result = self.gateway.check_in_qr(payload.session_id, payload.qr_token, student_id)
        except GatewayUnavailable:
            self._online = False
            return self._enqueue(intent)
        return ScanResult(ok=result.ok, error=result.error, detail=result.detail)

    def submit_pin(self, pin_code: str) -> CheckInResult:
        """Check-in par PIN ; indisponible hors-ligne."""
        student_id = self.context.require_student()
        if not self._online:
            return CheckInResult(ok=False, error=OFFLINE, detail="Le check-in par PIN nécessite une connexion.")
        try:
            return self.gateway.check_in_pin(pin_code.strip(), student_id)
        except GatewayUnavailable:
            self._online = False
            return CheckInResult(ok=False, error=OFFLINE, detail="Serveur injoignable, réessayez plus tard.")

    def _enqueue(self, intent: OfflineCheckInIntent) -> ScanResult:
        try:
            self.queue.enqueue(intent)
        except Expired as exc:
            return ScanResult(ok=False, error=Expired.code, detail=exc.message)
        logger.info(
            "Scan hors-ligne mis en file pour %s (session %s)", self.context.display_name, intent.session_id
        )
        return ScanResult(ok=True, queued=True, detail=QUEUED_MESSAGE)

    def _reconcile_scheduled(self) -> None:
        self.reconciler.reconcile(self._online)
