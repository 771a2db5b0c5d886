"""
Routers pour le cycle de vie des sessions de présence (côté enseignant).
Création, clôture, session active d'un cours, QR code et liste des présents.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from attendance_app.database import get_db
from attendance_app.exceptions import AttendanceError, AuthorizationError
from attendance_app.schemas.attendee import AttendeeList
from attendance_app.schemas.session import SessionCreate, SessionEnd, SessionResponse
from attendance_app.services import attendee_service, session_service, token_service

# POST /api/v1/sessions, POST /api/v1/sessions/{id}/end, GET .../qr.png, GET .../attendees
router = APIRouter(prefix="/api/v1/sessions", tags=["Sessions"])

# GET /api/v1/courses/{course_id}/active-session
courses_router = APIRouter(prefix="/api/v1/courses", tags=["Sessions"])


def _to_http(exc: AttendanceError) -> HTTPException:
    """Les refus d'autorisation restent génériques : on ne dit pas quel contrôle a échoué."""
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=403, detail=AuthorizationError.default_message)
    return HTTPException(status_code=exc.status_code, detail=exc.message)


@router.post(
    "",
    response_model=SessionResponse,
    status_code=201,
    summary="Ouvrir une session de présence",
)
def create_session(data: SessionCreate, db: Session = Depends(get_db)):
    """
    Crée une session active pour le cours, avec token QR et PIN générés.
    expires_at = maintenant + duration_minutes (fixe, jamais prolongé).

    Retourne 403 si le créateur n'enseigne pas ce cours (et n'est pas admin),
    404 si le cours est introuvable, 409 si une session est déjà active.
    """
    try:
        return session_service.create_session(
            db, data.course_id, data.session_name, data.duration_minutes, data.creator_id
        )
    except AttendanceError as e:
        raise _to_http(e)


@router.post(
    "/{session_id}/end",
    response_model=SessionResponse,
    summary="Terminer une session",
)
def end_session(session_id: uuid.UUID, data: SessionEnd, db: Session = Depends(get_db)):
    """
    Termine la session (is_active = false, ended_at = now). Transition à sens unique.
    Terminer une session déjà terminée renvoie la session inchangée.
    """
    try:
        return session_service.end_session(db, session_id, data.requester_id)
    except AttendanceError as e:
        raise _to_http(e)


@router.get(
    "/{session_id}/qr.png",
    summary="QR code de la session (PNG)",
)
def get_session_qr(session_id: uuid.UUID, requester_id: uuid.UUID, db: Session = Depends(get_db)):
    """
    Image PNG du QR code à afficher en classe.
    Réservé à l'enseignant du cours : le QR code donne le droit de s'enregistrer.
    """
    try:
        session = session_service.get_managed_session(db, session_id, requester_id)
    except AttendanceError as e:
        raise _to_http(e)

    payload = token_service.encode_session_payload(session.id, session.qr_token, session.expires_at)
    png = token_service.generate_qr_image(payload)
    return StreamingResponse(iter([png]), media_type="image/png")


@router.get(
    "/{session_id}/attendees",
    response_model=AttendeeList,
    summary="Liste des présents d'une session",
)
def get_attendees(session_id: uuid.UUID, requester_id: uuid.UUID, db: Session = Depends(get_db)):
    """
    Présents de la session avec nom, matricule et signature (si disponible),
    triés du plus récent au plus ancien.
    """
    try:
        return attendee_service.get_session_attendees(db, session_id, requester_id)
    except AttendanceError as e:
        raise _to_http(e)


@courses_router.get(
    "/{course_id}/active-session",
    response_model=Optional[SessionResponse],
    summary="Session active d'un cours",
)
def get_active_session(course_id: uuid.UUID, db: Session = Depends(get_db)):
    """Retourne la session active du cours, ou null."""
    return session_service.get_active_session(db, course_id)
