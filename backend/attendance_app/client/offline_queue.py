"""
File d'attente locale et durable des check-ins hors-ligne (SQLite via SQLAlchemy).

Survit aux redémarrages de l'application. Les intentions ne quittent jamais l'appareil :
aucune coordination entre appareils. Pas de dédoublonnage à l'insertion, la contrainte
d'unicité du serveur sert de filet.

SQLite ne conserve pas le fuseau : les datetimes sont stockés en UTC naïf.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Column, DateTime, Integer, String, create_engine, delete, func, select
from sqlalchemy.orm import declarative_base, sessionmaker

from attendance_app.config import settings
from attendance_app.exceptions import Expired
from attendance_app.schemas.offline import OfflineCheckInIntent, QueuedCheckIn
from attendance_app.services.token_service import as_utc

logger = logging.getLogger(__name__)

# Base séparée : ces tables n'existent que sur l'appareil, jamais dans PostgreSQL
LocalBase = declarative_base()


class PendingCheckIn(LocalBase):
    __tablename__ = "pending_checkins"

    id = Column(Integer, primary_key=True, autoincrement=True)   # Identifiant local
    session_id = Column(String(36), nullable=False)
    qr_token = Column(String(100), nullable=False)
    scanned_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    student_id = Column(String(36), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(DateTime, nullable=True)   # NULL = rejouable immédiatement
    last_error = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: _to_storage(datetime.now(timezone.utc)))


class OfflineQueue:

    def __init__(self, database_url: Optional[str] = None):
        self._engine = create_engine(database_url or settings.OFFLINE_QUEUE_URL)
        LocalBase.metadata.create_all(self._engine)
        self._sessionmaker = sessionmaker(bind=self._engine, autoflush=False)

    def enqueue(self, intent: OfflineCheckInIntent) -> int:
        """
        Ajoute une intention et retourne son identifiant local.
        Refuse (Expired) un scan capturé après l'expiration lue dans le QR.
        """
        if as_utc(intent.scanned_at) >= as_utc(intent.expires_at):
            raise Expired("Le QR code avait déjà expiré au moment du scan.")

        with self._sessionmaker() as db:
            row = PendingCheckIn(
                session_id=str(intent.session_id),
                qr_token=intent.qr_token,
                scanned_at=_to_storage(intent.scanned_at),
                expires_at=_to_storage(intent.expires_at),
                student_id=str(intent.student_id) if intent.student_id else None,
            )
            db.add(row)
            db.commit()
            local_id = row.id

        logger.info("Check-in hors-ligne mis en file (local_id=%s, session %s)", local_id, intent.session_id)
        return local_id

    def list_pending(self, student_id: Optional[uuid.UUID] = None) -> List[QueuedCheckIn]:
        """Intentions en attente (ordre non significatif). Filtrées par étudiant si fourni."""
        stmt = select(PendingCheckIn).order_by(PendingCheckIn.id)
        if student_id is not None:
            stmt = stmt.where(PendingCheckIn.student_id == str(student_id))
        with self._sessionmaker() as db:
            rows = db.execute(stmt).scalars().all()
            return [_to_queued(row) for row in rows]

    def dequeue(self, local_id: int) -> bool:
        """Retire une intention (rejouée ou refusée définitivement)."""
        with self._sessionmaker() as db:
            result = db.execute(delete(PendingCheckIn).where(PendingCheckIn.id == local_id))
            db.commit()
            return (result.rowcount or 0) > 0

    def record_failure(self, local_id: int, error: str, next_attempt_at: datetime) -> None:
        """Note un échec transitoire : l'intention reste en file jusqu'à next_attempt_at."""
        with self._sessionmaker() as db:
            row = db.get(PendingCheckIn, local_id)
            if row is None:
                return
            row.attempts = (row.attempts or 0) + 1
            row.last_error = error[:255]
            row.next_attempt_at = _to_storage(next_attempt_at)
            db.commit()

    def count(self, student_id: Optional[uuid.UUID] = None) -> int:
        stmt = select(func.count(PendingCheckIn.id))
        if student_id is not None:
            stmt = stmt.where(PendingCheckIn.student_id == str(student_id))
        with self._sessionmaker() as db:
            return db.execute(stmt).scalar() or 0

    def clear(self) -> int:
        """Vide la file (ex. réinitialisation de l'appareil)."""
        with self._sessionmaker() as db:
            result = db.execute(delete(PendingCheckIn))
            db.commit()
            return result.rowcount or 0

    def close(self) -> None:
        self._engine.dispose()


def _to_storage(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


def _from_storage(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def _to_queued(row: PendingCheckIn) -> QueuedCheckIn:
    return QueuedCheckIn(
        local_id=row.id,
        session_id=uuid.UUID(row.session_id),
        qr_token=row.qr_token,
        scanned_at=_from_storage(row.scanned_at),
        expires_at=_from_storage(row.expires_at),
        student_id=uuid.UUID(row.student_id) if row.student_id else None,
        attempts=row.attempts or 0,
        next_attempt_at=_from_storage(row.next_attempt_at),
        last_error=row.last_error,
    )
