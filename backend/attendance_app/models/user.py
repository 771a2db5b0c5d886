"""
Modèle SQLAlchemy pour les profils (identité des étudiants, enseignants, admins).
Collaborateur externe : en lecture seule pour le cœur de présence.
"""

import uuid
from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from attendance_app.database import Base

ROLE_STUDENT = "student"
ROLE_LECTURER = "lecturer"
ROLE_ADMIN = "admin"


class User(Base):
    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    matric_number = Column(String(50), nullable=True)    # NULL pour enseignants/admins
    role = Column(String(20), nullable=False, default=ROLE_STUDENT)  # student, lecturer, admin
    department = Column(String(255), nullable=True)
    level = Column(String(50), nullable=True)
    signature_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
