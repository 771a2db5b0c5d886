"""
Passerelles vers le contrôleur d'admission, utilisées par le client et le réconciliateur.

- HttpCheckInGateway : appelle l'API (requests). Une erreur réseau ou un 5xx lève
  GatewayUnavailable (transitoire) ; les refus métier reviennent en CheckInResult.
- DirectCheckInGateway : appelle le service en processus, avec sa propre session BDD.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from attendance_app.config import settings
from attendance_app.exceptions import AttendanceError, NotFound, ValidationError
from attendance_app.models.attendance_record import METHOD_PIN
from attendance_app.schemas.checkin import CheckInResult, PinLookup, QrLookup
from attendance_app.services import checkin_service

logger = logging.getLogger(__name__)

INVALID_PIN = "invalid_pin"


class GatewayUnavailable(Exception):
    """Serveur injoignable ou en erreur : la tentative peut être rejouée plus tard."""


class HttpCheckInGateway:

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.API_TIMEOUT_SECONDS
        self._http = http or requests.Session()

    def check_in_qr(
        self,
        session_id: uuid.UUID,
        qr_token: str,
        student_id: uuid.UUID,
        client_captured_at: Optional[datetime] = None,
    ) -> CheckInResult:
        body = {
            "session_id": str(session_id),
            "qr_token": qr_token,
            "student_id": str(student_id),
        }
        if client_captured_at is not None:
            body["client_captured_at"] = client_captured_at.isoformat()
        return self._post("/api/v1/checkin/qr", body)

    def check_in_pin(self, pin_code: str, student_id: uuid.UUID) -> CheckInResult:
        return self._post("/api/v1/checkin/pin", {"pin_code": pin_code, "student_id": str(student_id)})

    def _post(self, path: str, body: dict) -> CheckInResult:
        url = f"{self.base_url}{path}"
        try:
            response = self._http.post(url, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Appel %s impossible : %s", path, exc)
            raise GatewayUnavailable(f"Serveur injoignable : {exc}") from exc

        if response.status_code >= 500:
            raise GatewayUnavailable(f"Erreur serveur HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise GatewayUnavailable(f"Réponse illisible (HTTP {response.status_code})") from exc

        if not isinstance(data, dict):
            raise GatewayUnavailable(f"Réponse inattendue (HTTP {response.status_code})")

        # 422 de validation FastAPI : pas de champ "ok"
        if "ok" not in data:
            return CheckInResult(ok=False, error=ValidationError.code, detail=str(data.get("detail", "")))
        return CheckInResult.model_validate(data)


class DirectCheckInGateway:

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def check_in_qr(
        self,
        session_id: uuid.UUID,
        qr_token: str,
        student_id: uuid.UUID,
        client_captured_at: Optional[datetime] = None,
    ) -> CheckInResult:
        lookup = QrLookup(session_id=session_id, qr_token=qr_token)
        method = checkin_service.method_for_qr(client_captured_at)
        return self._admit(lookup, student_id, method, client_captured_at, NotFound.code)

    def check_in_pin(self, pin_code: str, student_id: uuid.UUID) -> CheckInResult:
        return self._admit(PinLookup(pin_code=pin_code), student_id, METHOD_PIN, None, INVALID_PIN)

    def _admit(self, lookup, student_id, method, client_captured_at, not_found_code) -> CheckInResult:
        db = self._session_factory()
        try:
            checkin_service.admit_check_in(
                db, lookup, student_id, method, client_captured_at=client_captured_at
            )
        except NotFound as exc:
            return CheckInResult(ok=False, error=not_found_code, detail=exc.message)
        except AttendanceError as exc:
            return CheckInResult(ok=False, error=exc.code, detail=exc.message)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Admission directe impossible : %s", exc)
            raise GatewayUnavailable(f"Base de données indisponible : {exc}") from exc
        finally:
            db.close()
        return CheckInResult(ok=True)
