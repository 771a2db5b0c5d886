"""
Contrôleur d'admission des check-ins (QR en direct, PIN, QR hors-ligne rejoué).

États par couple (session, étudiant) : NONE → CHECKED_IN (terminal).

Étapes :
1. Résolution de la session : par (id, token QR) sans filtre sur le flag actif,
   ou par PIN parmi les sessions actives uniquement
2. NotFound si aucune session ne correspond
3. Expired si l'heure opérante ≥ expires_at, ou si la session est terminée
4. INSERT de l'enregistrement : la contrainte UNIQUE (session_id, student_id) est le seul
   arbitre des doublons. Pas de SELECT préalable : deux requêtes simultanées
   (scan direct + rejeu hors-ligne) passeraient toutes deux un contrôle applicatif.

Heure opérante : l'heure serveur pour QR/PIN en direct, l'heure de capture client
pour un rejeu hors-ligne (bornée par CLOCK_SKEW_TOLERANCE_SECONDS).
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from attendance_app.config import settings
from attendance_app.exceptions import Duplicate, Expired, NotFound, ValidationError
from attendance_app.models.attendance_record import (
    CHECK_IN_METHODS,
    METHOD_OFFLINE_QR,
    METHOD_PIN,
    METHOD_QR,
    UNIQUE_CHECK_IN_CONSTRAINT,
    AttendanceRecord,
)
from attendance_app.models.attendance_session import AttendanceSession
from attendance_app.schemas.checkin import PinLookup, QrLookup
from attendance_app.services.token_service import as_utc

logger = logging.getLogger(__name__)

# SQLSTATE PostgreSQL pour unique_violation
UNIQUE_VIOLATION = "23505"

SessionLookup = Union[QrLookup, PinLookup]


def admit_check_in(
    db: Session,
    lookup: SessionLookup,
    student_id: uuid.UUID,
    method: str,
    client_captured_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> AttendanceRecord:
    """
    Admet (ou rejette) une tentative de check-in et retourne l'enregistrement créé.

    Lève ValidationError, NotFound, Expired ou Duplicate.
    """
    now = now or datetime.now(timezone.utc)
    offline = method == METHOD_OFFLINE_QR
    _validate_attempt(lookup, student_id, method, client_captured_at)

    session = resolve_session(db, lookup)
    if session is None:
        raise NotFound()

    if offline:
        operative_time = _check_capture_time(session, client_captured_at, now)
    else:
        operative_time = now
    _ensure_open_at(session, operative_time, offline)

    record = AttendanceRecord(
        session_id=session.id,
        student_id=student_id,
        check_in_method=method,
        checked_in_at=now,
        synced_from_offline=offline,
        offline_scanned_at=as_utc(client_captured_at) if offline else None,
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if _is_unique_violation(exc):
            logger.debug("Check-in en double rejeté : session %s, étudiant %s", session.id, student_id)
            raise Duplicate()
        logger.warning("Check-in refusé par la base (session %s, étudiant %s) : %s", session.id, student_id, exc.orig)
        raise ValidationError("Étudiant ou session inconnu.")

    db.refresh(record)
    logger.info(
        "Check-in accepté : session %s, étudiant %s, méthode %s",
        session.id, student_id, method,
    )
    return record


def resolve_session(db: Session, lookup: SessionLookup) -> Optional[AttendanceSession]:
    """Résout la session ciblée par la clé de recherche, ou None."""
    if isinstance(lookup, QrLookup):
        stmt = select(AttendanceSession).where(
            AttendanceSession.id == lookup.session_id,
            AttendanceSession.qr_token == lookup.qr_token,
        )
    else:
        stmt = select(AttendanceSession).where(
            AttendanceSession.pin_code == lookup.pin_code,
            AttendanceSession.is_active.is_(True),
        )
    return db.execute(stmt).scalar()


# ----------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------

def _validate_attempt(
    lookup: SessionLookup,
    student_id: Optional[uuid.UUID],
    method: str,
    client_captured_at: Optional[datetime],
) -> None:
    if student_id is None:
        raise ValidationError("student_id est obligatoire.")
    if method not in CHECK_IN_METHODS:
        raise ValidationError(f"Méthode de check-in invalide : {method}")
    if isinstance(lookup, PinLookup):
        if method != METHOD_PIN or not lookup.pin_code:
            raise ValidationError("Un check-in par PIN requiert un PIN et la méthode 'pin'.")
    elif method == METHOD_PIN or not lookup.qr_token:
        raise ValidationError("Un check-in par QR requiert un token et une méthode QR.")

    if method == METHOD_OFFLINE_QR and client_captured_at is None:
        raise ValidationError("Un rejeu hors-ligne doit fournir l'heure de capture.")
    if method != METHOD_OFFLINE_QR and client_captured_at is not None:
        raise ValidationError("L'heure de capture n'est acceptée que pour un rejeu hors-ligne.")


def _check_capture_time(
    session: AttendanceSession,
    client_captured_at: datetime,
    now: datetime,
) -> datetime:
    """Borne l'heure de capture client : ni dans le futur, ni avant l'ouverture de la session."""
    captured = as_utc(client_captured_at)
    tolerance = timedelta(seconds=settings.CLOCK_SKEW_TOLERANCE_SECONDS)
    if captured > as_utc(now) + tolerance:
        raise ValidationError("L'heure de capture est dans le futur.")
    if session.started_at is not None and captured < as_utc(session.started_at) - tolerance:
        raise ValidationError("L'heure de capture précède l'ouverture de la session.")
    return captured


def _ensure_open_at(session: AttendanceSession, at: datetime, offline: bool) -> None:
    """Expired si la fenêtre est close à l'heure opérante."""
    if as_utc(at) >= as_utc(session.expires_at):
        raise Expired()
    if offline:
        # Le rejeu reste valable si le scan a eu lieu avant la clôture
        if session.ended_at is not None and as_utc(at) >= as_utc(session.ended_at):
            raise Expired()
    elif not session.is_active:
        raise Expired()


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    if getattr(orig, "pgcode", None) == UNIQUE_VIOLATION:
        return True
    return UNIQUE_CHECK_IN_CONSTRAINT in str(orig)


def method_for_qr(client_captured_at: Optional[datetime]) -> str:
    """Méthode d'un check-in QR : hors-ligne si une heure de capture est fournie."""
    return METHOD_OFFLINE_QR if client_captured_at is not None else METHOD_QR
