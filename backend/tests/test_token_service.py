"""
Tests unitaires pour la génération des tokens/PIN et l'encodage des QR codes.
"""

import base64
import json
import re
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from attendance_app.services.token_service import (
    decode_session_payload,
    encode_session_payload,
    generate_qr_image,
    is_payload_expired,
    new_pin,
    new_qr_token,
)

EXPIRES = datetime(2026, 3, 2, 9, 15, tzinfo=timezone.utc)


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


# ============================================================
# Token QR
# ============================================================

def test_tokens_uniques():
    tokens = {new_qr_token() for _ in range(1000)}
    assert len(tokens) == 1000


def test_token_partie_aleatoire_suffisante():
    """Au moins 80 bits d'aléa : 16 octets urlsafe → 22 caractères."""
    token = new_qr_token()
    _, random_part = token.split("-", 1)
    assert len(random_part) >= 22


# ============================================================
# PIN
# ============================================================

def test_pin_six_chiffres():
    for _ in range(200):
        assert re.fullmatch(r"\d{6}", new_pin())


def test_pin_conserve_les_zeros_initiaux():
    with patch("attendance_app.services.token_service.secrets.randbelow", return_value=42):
        assert new_pin() == "000042"


def test_pin_borne_superieure():
    with patch("attendance_app.services.token_service.secrets.randbelow", return_value=999999):
        assert new_pin() == "999999"


# ============================================================
# Payload QR
# ============================================================

def test_aller_retour_payload():
    session_id = uuid.uuid4()
    encoded = encode_session_payload(session_id, "tok-abc", EXPIRES)

    decoded = decode_session_payload(encoded)

    assert decoded is not None
    assert decoded.session_id == session_id
    assert decoded.qr_token == "tok-abc"
    assert decoded.expires_at == EXPIRES


def test_payload_cles_camel_case():
    """Le contenu reste lisible par les scanners existants : sessionId, qrToken, expiresAt."""
    encoded = encode_session_payload(uuid.uuid4(), "tok", EXPIRES)
    data = json.loads(base64.b64decode(encoded))
    assert set(data) == {"sessionId", "qrToken", "expiresAt"}


def test_decode_entrees_malformees_retourne_none():
    malformed = [
        "",
        "pas du base64 !!",
        _b64("pas du json"),
        _b64("[1, 2, 3]"),
        _b64(json.dumps({"sessionId": "pas-un-uuid", "qrToken": "t", "expiresAt": "2026-03-02T09:15:00Z"})),
        _b64(json.dumps({"sessionId": str(uuid.uuid4())})),
        base64.b64encode(b"\xff\xfe\xfd").decode("ascii"),
        None,
        12345,
    ]
    for value in malformed:
        assert decode_session_payload(value) is None, f"{value!r} devrait être invalide"


def test_decode_json_trop_imbrique_retourne_none():
    nested = ("[" * 5000 + "]" * 5000).encode("utf-8")
    assert decode_session_payload(base64.b64encode(nested).decode("ascii")) is None


def test_payload_expire_a_l_heure_exacte():
    payload = decode_session_payload(encode_session_payload(uuid.uuid4(), "tok", EXPIRES))
    assert is_payload_expired(payload, EXPIRES) is True
    assert is_payload_expired(payload, EXPIRES - timedelta(seconds=1)) is False


# ============================================================
# Image QR
# ============================================================

def test_generate_qr_image_png():
    png = generate_qr_image(encode_session_payload(uuid.uuid4(), "tok", EXPIRES))
    assert png.startswith(b"\x89PNG")
