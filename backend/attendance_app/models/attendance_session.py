"""
Modèle SQLAlchemy pour les sessions de présence (fenêtre de check-in d'un cours).

Cycle de vie : créée active → désactivée (fin explicite ou expiration). Jamais supprimée,
jamais réactivée. expires_at est fixé à la création.
"""

import uuid
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, func, text
from sqlalchemy.dialects.postgresql import UUID

from attendance_app.database import Base


class AttendanceSession(Base):
    __tablename__ = "attendance_sessions"
    __table_args__ = (
        # PIN unique uniquement parmi les sessions actives
        Index(
            "uq_attendance_sessions_active_pin",
            "pin_code",
            unique=True,
            postgresql_where=text("is_active"),
        ),
        # Au plus une session active par cours
        Index(
            "uq_attendance_sessions_active_course",
            "course_id",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    session_name = Column(String(255), nullable=False)
    qr_token = Column(String(100), unique=True, nullable=False)
    pin_code = Column(String(6), nullable=False)

    started_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)   # NULL = pas encore terminée
    is_active = Column(Boolean, nullable=False, default=True)

    created_by = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
