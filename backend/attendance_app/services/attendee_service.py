"""
Assemblage de la liste des présents d'une session (vue enseignant, lecture seule).

Chaque check-in est joint au profil de l'étudiant (LEFT JOIN : un profil manquant
donne "Inconnu") puis à une image de signature, résolue par une liste ordonnée
de stratégies. Une stratégie en échec est journalisée et ignorée : l'étudiant
reste sans image, la réponse n'échoue pas.
"""

import logging
import uuid
from typing import Callable, Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from attendance_app.config import settings
from attendance_app.models.attendance_record import AttendanceRecord
from attendance_app.models.signature import SignatureObject
from attendance_app.models.user import User
from attendance_app.schemas.attendee import Attendee, AttendeeList
from attendance_app.services import session_service

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Inconnu"

# (db, étudiants sans image) → {student_id: url}
SignatureStrategy = Callable[[Session, Set[uuid.UUID]], Dict[uuid.UUID, str]]


def get_session_attendees(
    db: Session,
    session_id: uuid.UUID,
    requester_id: uuid.UUID,
) -> AttendeeList:
    """
    Retourne les présents d'une session, triés par heure de check-in décroissante.

    Lève NotFound si la session n'existe pas, AuthorizationError si le demandeur
    n'est ni l'enseignant du cours ni admin.
    """
    session_service.get_managed_session(db, session_id, requester_id)

    rows = db.execute(
        select(AttendanceRecord, User)
        .outerjoin(User, User.id == AttendanceRecord.student_id)
        .where(AttendanceRecord.session_id == session_id)
        .order_by(AttendanceRecord.checked_in_at.desc())
    ).all()

    signatures: Dict[uuid.UUID, str] = {}
    for record, profile in rows:
        if profile is not None and profile.signature_url:
            signatures[record.student_id] = profile.signature_url

    missing = {record.student_id for record, _ in rows} - set(signatures)
    signatures.update(resolve_signatures(db, missing))

    attendees = [
        Attendee(
            record_id=record.id,
            student_id=record.student_id,
            full_name=(profile.full_name if profile is not None and profile.full_name else UNKNOWN_NAME),
            matric_number=profile.matric_number if profile is not None else None,
            signature_url=signatures.get(record.student_id),
            checked_in_at=record.checked_in_at,
            check_in_method=record.check_in_method,
            synced_from_offline=bool(record.synced_from_offline),
            offline_scanned_at=record.offline_scanned_at,
        )
        for record, profile in rows
    ]

    return AttendeeList(session_id=session_id, total=len(attendees), attendees=attendees)


def resolve_signatures(
    db: Session,
    student_ids: Set[uuid.UUID],
    strategies: Optional[List[SignatureStrategy]] = None,
) -> Dict[uuid.UUID, str]:
    """Applique les stratégies dans l'ordre aux étudiants encore sans image."""
    found: Dict[uuid.UUID, str] = {}
    remaining = set(student_ids)
    for strategy in strategies if strategies is not None else DEFAULT_STRATEGIES:
        if not remaining:
            break
        try:
            # point de sauvegarde : un échec n'annule pas la transaction englobante
            with db.begin_nested():
                resolved = strategy(db, remaining)
        except SQLAlchemyError as exc:
            logger.warning("Résolution des signatures (%s) en échec : %s", strategy.__name__, exc)
            continue
        found.update(resolved)
        remaining -= set(resolved)
    return found


def latest_owned_object(db: Session, student_ids: Set[uuid.UUID]) -> Dict[uuid.UUID, str]:
    """Objet le plus récent du bucket dont l'étudiant est propriétaire."""
    objects = db.execute(
        select(SignatureObject)
        .where(
            SignatureObject.bucket_id == settings.SIGNATURE_BUCKET,
            SignatureObject.owner.in_(student_ids),
        )
        .order_by(SignatureObject.created_at.desc())
    ).scalars().all()

    urls: Dict[uuid.UUID, str] = {}
    for obj in objects:
        # Tri décroissant : le premier objet rencontré est le plus récent
        urls.setdefault(obj.owner, public_url(obj.name))
    return urls


def object_named_after_student(db: Session, student_ids: Set[uuid.UUID]) -> Dict[uuid.UUID, str]:
    """Dernier recours : objet dont le nom contient l'identifiant de l'étudiant."""
    urls: Dict[uuid.UUID, str] = {}
    for student_id in student_ids:
        obj = db.execute(
            select(SignatureObject)
            .where(
                SignatureObject.bucket_id == settings.SIGNATURE_BUCKET,
                SignatureObject.name.contains(str(student_id)),
            )
            .order_by(SignatureObject.updated_at.desc())
        ).scalar()
        if obj is not None:
            urls[student_id] = public_url(obj.name)
    return urls


def public_url(object_name: str) -> str:
    base = settings.SIGNATURE_PUBLIC_BASE_URL.rstrip("/")
    return f"{base}/{settings.SIGNATURE_BUCKET}/{object_name.lstrip('/')}"


DEFAULT_STRATEGIES: List[SignatureStrategy] = [latest_owned_object, object_named_after_student]
