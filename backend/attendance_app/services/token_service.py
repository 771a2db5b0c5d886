"""
Génération des identifiants de session et encodage du contenu des QR codes.

- Token QR : horodatage haute résolution + 128 bits aléatoires (secrets), opaque.
- PIN : 6 chiffres uniformes sur 000000–999999, unique seulement parmi les sessions actives.
- Payload QR : JSON {sessionId, qrToken, expiresAt} encodé en base64. Ce n'est pas
  une signature : quiconque capture le code avant expiration peut l'utiliser.
"""

import base64
import binascii
import io
import json
import secrets
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

import qrcode
from pydantic import ValidationError

from attendance_app.schemas.qr_payload import SessionQrPayload

PIN_LENGTH = 6


def new_qr_token() -> str:
    """Génère un token QR unique (format : <ns-hex>-<aléa urlsafe>)."""
    return f"{time.time_ns():x}-{secrets.token_urlsafe(16)}"


def new_pin() -> str:
    """Génère un PIN numérique à 6 chiffres."""
    return f"{secrets.randbelow(10 ** PIN_LENGTH):0{PIN_LENGTH}d}"


def encode_session_payload(session_id: uuid.UUID, qr_token: str, expires_at: datetime) -> str:
    """Encode le contenu d'un QR code de session."""
    payload = SessionQrPayload(session_id=session_id, qr_token=qr_token, expires_at=expires_at)
    raw = payload.model_dump_json(by_alias=True)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_session_payload(encoded: str) -> Optional[SessionQrPayload]:
    """
    Décode le contenu d'un QR code scanné.
    Retourne None pour toute entrée malformée (jamais d'exception).
    """
    try:
        raw = base64.b64decode(encoded, validate=True)
        data = json.loads(raw.decode("utf-8"))
        return SessionQrPayload.model_validate(data)
    except (binascii.Error, UnicodeDecodeError, ValueError, TypeError, RecursionError, ValidationError):
        return None


def is_payload_expired(payload: SessionQrPayload, at: Optional[datetime] = None) -> bool:
    """Contrôle local de péremption (avant envoi ou mise en file hors-ligne)."""
    at = at or datetime.now(timezone.utc)
    return as_utc(at) >= as_utc(payload.expires_at)


def generate_qr_image(data: str) -> bytes:
    """Génère une image PNG du QR code encodant la chaîne donnée."""
    qr = qrcode.QRCode(version=None, box_size=10, border=4)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def as_utc(value: datetime) -> datetime:
    """Normalise un datetime en UTC aware (un datetime naïf est considéré comme UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
