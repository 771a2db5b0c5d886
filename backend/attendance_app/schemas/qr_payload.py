"""
Schéma du contenu d'un QR code de session : {sessionId, qrToken, expiresAt}.
Clés en camelCase pour rester lisibles par les scanners existants.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SessionQrPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: uuid.UUID
    qr_token: str
    expires_at: datetime
