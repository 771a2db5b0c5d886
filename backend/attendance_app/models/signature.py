"""
Métadonnées du stockage objet des signatures (bucket "signatures").
Seul le nom et le propriétaire sont utilisés pour retrouver l'image d'un étudiant.
"""

import uuid
from sqlalchemy import Column, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID

from attendance_app.database import Base


class SignatureObject(Base):
    __tablename__ = "signature_objects"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bucket_id = Column(String(100), nullable=False, default="signatures")
    name = Column(String(500), nullable=False)
    owner = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
