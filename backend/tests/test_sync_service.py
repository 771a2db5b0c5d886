"""
Tests unitaires pour le rejeu groupé des check-ins hors-ligne.
Couverture : délégation au contrôleur d'admission, issues par élément,
comptage, un échec n'interrompt pas le batch.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from attendance_app.exceptions import Duplicate, Expired, NotFound, ValidationError
from attendance_app.schemas.checkin import QrLookup
from attendance_app.schemas.sync import OfflineCheckInItem
from attendance_app.services.sync_service import sync_offline_checkins

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
STUDENT_ID = uuid.uuid4()


# --- Helper ---

def make_item(local_id=1, **kwargs) -> OfflineCheckInItem:
    return OfflineCheckInItem(
        local_id=local_id,
        session_id=kwargs.get("session_id", uuid.uuid4()),
        qr_token=kwargs.get("qr_token", "tok-123"),
        scanned_at=kwargs.get("scanned_at", T0),
    )


# ============================================================
# sync_offline_checkins
# ============================================================

@patch("attendance_app.services.sync_service.admit_check_in")
def test_elements_acceptes(mock_admit):
    items = [make_item(1), make_item(2)]

    result = sync_offline_checkins(MagicMock(), STUDENT_ID, items, device_id="android-01")

    assert result.total_received == 2
    assert result.total_inserted == 2
    assert result.total_duplicate == 0
    assert [r.outcome for r in result.results] == ["accepted", "accepted"]
    assert [r.local_id for r in result.results] == [1, 2]


@patch("attendance_app.services.sync_service.admit_check_in")
def test_rejeu_a_l_heure_de_capture(mock_admit):
    db = MagicMock()
    item = make_item(scanned_at=T0 + timedelta(minutes=2))
    now = T0 + timedelta(minutes=30)

    sync_offline_checkins(db, STUDENT_ID, [item], now=now)

    mock_admit.assert_called_once_with(
        db,
        QrLookup(session_id=item.session_id, qr_token=item.qr_token),
        STUDENT_ID,
        "offline_qr",
        client_captured_at=item.scanned_at,
        now=now,
    )


@patch("attendance_app.services.sync_service.admit_check_in")
def test_issues_mixtes(mock_admit):
    """Un doublon ou une session expirée n'interrompt pas le traitement des suivants."""
    mock_admit.side_effect = [None, Duplicate(), Expired(), NotFound(), ValidationError()]
    items = [make_item(i) for i in range(1, 6)]

    result = sync_offline_checkins(MagicMock(), STUDENT_ID, items)

    assert [r.outcome for r in result.results] == [
        "accepted", "duplicate", "expired", "not_found", "validation",
    ]
    assert result.total_received == 5
    assert result.total_inserted == 1
    assert result.total_duplicate == 1
    assert mock_admit.call_count == 5


@patch("attendance_app.services.sync_service.admit_check_in")
def test_batch_vide(mock_admit):
    result = sync_offline_checkins(MagicMock(), STUDENT_ID, [])

    assert result.results == []
    assert result.total_received == 0
    mock_admit.assert_not_called()


@patch("attendance_app.services.sync_service.admit_check_in")
def test_rejeu_idempotent(mock_admit):
    """Le même élément rejoué deux fois : accepté puis duplicate."""
    mock_admit.side_effect = [None, Duplicate()]
    item = make_item(7)

    first = sync_offline_checkins(MagicMock(), STUDENT_ID, [item])
    second = sync_offline_checkins(MagicMock(), STUDENT_ID, [item])

    assert first.results[0].outcome == "accepted"
    assert second.results[0].outcome == "duplicate"
    assert second.total_inserted == 0
