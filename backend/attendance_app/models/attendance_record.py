"""
Modèle SQLAlchemy pour les enregistrements de présence.

La contrainte UNIQUE (session_id, student_id) est la garantie centrale :
un check-in concurrent en double (double tap, rejeu hors-ligne contre un scan en direct)
est rejeté par la base elle-même, pas par un SELECT préalable.
"""

import uuid
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from attendance_app.database import Base

METHOD_QR = "qr"
METHOD_PIN = "pin"
METHOD_OFFLINE_QR = "offline_qr"

CHECK_IN_METHODS = {METHOD_QR, METHOD_PIN, METHOD_OFFLINE_QR}

UNIQUE_CHECK_IN_CONSTRAINT = "uq_attendance_records_session_student"


class AttendanceRecord(Base):
    """Preuve qu'un étudiant s'est enregistré à une session. Créé une fois, jamais modifié."""
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("session_id", "student_id", name=UNIQUE_CHECK_IN_CONSTRAINT),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(
        UUID(as_uuid=True), ForeignKey("attendance_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id = Column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    checked_in_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    check_in_method = Column(String(20), nullable=False)    # qr, pin, offline_qr
    synced_from_offline = Column(Boolean, nullable=False, default=False)
    offline_scanned_at = Column(DateTime(timezone=True), nullable=True)  # Timestamp client (hors-ligne uniquement)
