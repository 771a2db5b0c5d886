"""
Service métier pour le cycle de vie des sessions de présence.

Transitions : créée (active) → terminée (fin explicite ou expiration).
Aucune réactivation. Une seule session active par cours (index partiel en base).
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from attendance_app.config import settings
from attendance_app.exceptions import (
    ActiveSessionConflict,
    AuthorizationError,
    NotFound,
    ValidationError,
)
from attendance_app.models.attendance_session import AttendanceSession
from attendance_app.models.course import Course
from attendance_app.models.user import ROLE_ADMIN, User
from attendance_app.schemas.session import SessionResponse
from attendance_app.services import token_service
from attendance_app.services.token_service import as_utc

logger = logging.getLogger(__name__)


def create_session(
    db: Session,
    course_id: uuid.UUID,
    session_name: str,
    duration_minutes: int,
    creator_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> SessionResponse:
    """
    Ouvre une session de présence pour un cours.

    1. Valide le nom et la durée
    2. Vérifie que le créateur est l'enseignant du cours (ou admin)
    3. Clôture les sessions actives déjà expirées de ce cours
    4. Insère la session avec un token QR et un PIN neufs ; en cas de collision
       de PIN actif, régénère (PIN_GENERATION_ATTEMPTS tentatives)

    Lève ValidationError, AuthorizationError, NotFound (cours) ou ActiveSessionConflict.
    """
    if not session_name or not session_name.strip():
        raise ValidationError("Le nom de la session ne peut pas être vide.")
    if duration_minutes <= 0:
        raise ValidationError("La durée doit être strictement positive.")

    now = now or datetime.now(timezone.utc)
    course = _get_course(db, course_id)
    _ensure_can_manage(db, course, creator_id)

    close_expired_sessions(db, course_id=course_id, now=now)
    if _find_live_session(db, course_id, now) is not None:
        raise ActiveSessionConflict()

    expires_at = now + timedelta(minutes=duration_minutes)

    for attempt in range(1, settings.PIN_GENERATION_ATTEMPTS + 1):
        session = AttendanceSession(
            course_id=course_id,
            session_name=session_name.strip(),
            qr_token=token_service.new_qr_token(),
            pin_code=token_service.new_pin(),
            started_at=now,
            expires_at=expires_at,
            is_active=True,
            created_by=creator_id,
        )
        db.add(session)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            # Création concurrente sur le même cours → conflit, sinon collision de PIN/token
            if _find_live_session(db, course_id, now) is not None:
                raise ActiveSessionConflict()
            logger.debug("Collision PIN/token à la création (tentative %d), régénération", attempt)
            continue

        db.refresh(session)
        logger.info(
            "Session %s créée pour le cours %s par %s (expire à %s)",
            session.id, course_id, creator_id, expires_at.isoformat(),
        )
        return to_response(session)

    raise ValidationError("Impossible de générer un PIN unique, veuillez réessayer.")


def end_session(
    db: Session,
    session_id: uuid.UUID,
    requester_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> SessionResponse:
    """
    Termine explicitement une session (active → terminée, ended_at = now).
    Terminer une session déjà terminée est sans effet.
    """
    session = db.execute(
        select(AttendanceSession).where(AttendanceSession.id == session_id)
    ).scalar()
    if session is None:
        raise NotFound(f"Session {session_id} introuvable.")

    course = _get_course(db, session.course_id)
    _ensure_can_manage(db, course, requester_id)

    if not session.is_active:
        return to_response(session)

    session.is_active = False
    session.ended_at = now or datetime.now(timezone.utc)
    db.commit()
    db.refresh(session)

    logger.info("Session %s terminée par %s", session_id, requester_id)
    return to_response(session)


def get_active_session(db: Session, course_id: uuid.UUID) -> Optional[SessionResponse]:
    """Retourne la session active du cours, ou None."""
    session = db.execute(
        select(AttendanceSession)
        .where(
            AttendanceSession.course_id == course_id,
            AttendanceSession.is_active.is_(True),
        )
        .order_by(AttendanceSession.started_at.desc())
    ).scalar()
    if session is None:
        return None
    return to_response(session)


def get_managed_session(
    db: Session,
    session_id: uuid.UUID,
    requester_id: uuid.UUID,
) -> AttendanceSession:
    """Charge une session en vérifiant que le demandeur gère son cours (enseignant ou admin)."""
    session = db.execute(
        select(AttendanceSession).where(AttendanceSession.id == session_id)
    ).scalar()
    if session is None:
        raise NotFound(f"Session {session_id} introuvable.")
    course = _get_course(db, session.course_id)
    _ensure_can_manage(db, course, requester_id)
    return session


def close_expired_sessions(
    db: Session,
    course_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Désactive les sessions actives dont l'expiration est passée.
    ended_at reçoit l'heure d'expiration, pas l'heure du balayage.
    Retourne le nombre de sessions clôturées.
    """
    now = now or datetime.now(timezone.utc)
    stmt = (
        update(AttendanceSession)
        .where(
            AttendanceSession.is_active.is_(True),
            AttendanceSession.expires_at <= now,
        )
        .values(is_active=False, ended_at=AttendanceSession.expires_at)
        .execution_options(synchronize_session=False)
    )
    if course_id is not None:
        stmt = stmt.where(AttendanceSession.course_id == course_id)

    result = db.execute(stmt)
    db.commit()
    count = result.rowcount or 0
    if count:
        logger.info("%d session(s) expirée(s) désactivée(s)", count)
    return count


def to_response(session: AttendanceSession) -> SessionResponse:
    response = SessionResponse.model_validate(session)
    response.qr_payload = token_service.encode_session_payload(
        session.id, session.qr_token, session.expires_at
    )
    return response


def is_usable(session: AttendanceSession, at: datetime) -> bool:
    """Une session accepte des check-ins tant qu'elle est active et que at < expires_at."""
    return bool(session.is_active) and as_utc(at) < as_utc(session.expires_at)


# ----------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------

def _get_course(db: Session, course_id: uuid.UUID) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise NotFound(f"Cours {course_id} introuvable.")
    return course


def _ensure_can_manage(db: Session, course: Course, actor_id: uuid.UUID) -> None:
    """L'enseignant du cours ou un admin peuvent gérer ses sessions."""
    if course.lecturer_id is not None and course.lecturer_id == actor_id:
        return
    actor = db.get(User, actor_id)
    if actor is not None and actor.role == ROLE_ADMIN:
        return
    logger.warning("Accès refusé : %s n'a pas les droits sur le cours %s", actor_id, course.id)
    raise AuthorizationError()


def _find_live_session(
    db: Session,
    course_id: uuid.UUID,
    now: datetime,
) -> Optional[AttendanceSession]:
    """Session active et non expirée du cours, s'il y en a une."""
    sessions: List[AttendanceSession] = db.execute(
        select(AttendanceSession).where(
            AttendanceSession.course_id == course_id,
            AttendanceSession.is_active.is_(True),
        )
    ).scalars().all()
    for session in sessions:
        if is_usable(session, now):
            return session
    return None
