"""
Routers pour le check-in des étudiants (QR et PIN).

Réponses : 200 {"ok": true} ou {"ok": false, "error": <code>, "detail": <message>}
- QR  : not_found (404) | expired (410) | duplicate (409) | validation (422)
- PIN : invalid_pin (404) | expired (410) | duplicate (409) | validation (422)
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from attendance_app.database import get_db
from attendance_app.exceptions import AttendanceError, NotFound
from attendance_app.models.attendance_record import METHOD_PIN
from attendance_app.schemas.checkin import (
    CheckInResult,
    PinCheckInRequest,
    PinLookup,
    QrCheckInRequest,
    QrLookup,
)
from attendance_app.services import checkin_service

router = APIRouter(prefix="/api/v1/checkin", tags=["Check-in"])

INVALID_PIN = "invalid_pin"
INVALID_PIN_MESSAGE = "PIN invalide ou session expirée."


def _error_response(exc: AttendanceError, code: str = "", detail: str = "") -> JSONResponse:
    result = CheckInResult(ok=False, error=code or exc.code, detail=detail or exc.message)
    return JSONResponse(status_code=exc.status_code, content=result.model_dump())


@router.post(
    "/qr",
    response_model=CheckInResult,
    summary="Check-in par QR code (en direct ou rejeu hors-ligne)",
)
def check_in_qr(data: QrCheckInRequest, db: Session = Depends(get_db)):
    """
    Admet un check-in par QR code.

    Sans client_captured_at : scan en direct, validé à l'heure serveur.
    Avec client_captured_at : rejeu d'un scan hors-ligne, validé à l'heure de capture.
    """
    try:
        checkin_service.admit_check_in(
            db,
            QrLookup(session_id=data.session_id, qr_token=data.qr_token),
            data.student_id,
            checkin_service.method_for_qr(data.client_captured_at),
            client_captured_at=data.client_captured_at,
        )
    except AttendanceError as e:
        return _error_response(e)
    return CheckInResult(ok=True)


@router.post(
    "/pin",
    response_model=CheckInResult,
    summary="Check-in par PIN",
)
def check_in_pin(data: PinCheckInRequest, db: Session = Depends(get_db)):
    """
    Admet un check-in par PIN. Un PIN inconnu et un PIN de session terminée
    donnent la même réponse invalid_pin.
    """
    try:
        checkin_service.admit_check_in(
            db,
            PinLookup(pin_code=data.pin_code),
            data.student_id,
            METHOD_PIN,
        )
    except NotFound as e:
        return _error_response(e, code=INVALID_PIN, detail=INVALID_PIN_MESSAGE)
    except AttendanceError as e:
        return _error_response(e)
    return CheckInResult(ok=True)
