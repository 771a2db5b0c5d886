"""
Tests unitaires pour le contrôleur d'admission des check-ins.
Couverture : résolution QR/PIN, expiration, session terminée, doublons (contrainte BDD),
rejeu hors-ligne à l'heure de capture, validation des entrées.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from attendance_app.exceptions import Duplicate, Expired, NotFound, ValidationError
from attendance_app.models.attendance_record import AttendanceRecord
from attendance_app.models.attendance_session import AttendanceSession
from attendance_app.schemas.checkin import PinLookup, QrLookup
from attendance_app.services.checkin_service import admit_check_in, method_for_qr

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# --- Helpers ---

def make_session(duration=timedelta(minutes=5), is_active=True, ended_at=None):
    s = MagicMock(spec=AttendanceSession)
    s.id = uuid.uuid4()
    s.course_id = uuid.uuid4()
    s.qr_token = "tok-123"
    s.pin_code = "123456"
    s.started_at = T0
    s.expires_at = T0 + duration
    s.ended_at = ended_at
    s.is_active = is_active
    return s


def make_db(session=None):
    """Mock de session DB. session = valeur retournée par la résolution (.scalar())."""
    db = MagicMock()
    db.execute.return_value.scalar.return_value = session
    return db


def unique_violation():
    orig = MagicMock()
    orig.pgcode = "23505"
    return IntegrityError("INSERT INTO attendance_records ...", {}, orig)


def fk_violation():
    orig = MagicMock()
    orig.pgcode = "23503"
    return IntegrityError("INSERT INTO attendance_records ...", {}, orig)


def qr(session):
    return QrLookup(session_id=session.id, qr_token=session.qr_token)


def pin(session):
    return PinLookup(pin_code=session.pin_code)


def where_clause(db) -> str:
    stmt = db.execute.call_args[0][0]
    return str(stmt.whereclause)


# ============================================================
# Check-in en direct
# ============================================================

class TestAdmissionEnDirect:
    def test_pin_succes(self):
        session = make_session()
        db = make_db(session)
        student = uuid.uuid4()

        record = admit_check_in(db, pin(session), student, "pin", now=T0 + timedelta(minutes=1))

        assert isinstance(record, AttendanceRecord)
        assert record.session_id == session.id
        assert record.student_id == student
        assert record.check_in_method == "pin"
        assert record.synced_from_offline is False
        assert record.offline_scanned_at is None
        db.add.assert_called_once_with(record)
        db.commit.assert_called_once()

    def test_qr_succes(self):
        session = make_session()
        db = make_db(session)

        record = admit_check_in(db, qr(session), uuid.uuid4(), "qr", now=T0 + timedelta(minutes=1))

        assert record.check_in_method == "qr"
        assert record.checked_in_at == T0 + timedelta(minutes=1)

    def test_session_introuvable(self):
        db = make_db(session=None)
        with pytest.raises(NotFound):
            admit_check_in(db, QrLookup(session_id=uuid.uuid4(), qr_token="faux"), uuid.uuid4(), "qr", now=T0)
        db.add.assert_not_called()

    def test_expire_a_l_heure_exacte(self):
        session = make_session()
        db = make_db(session)
        with pytest.raises(Expired):
            admit_check_in(db, qr(session), uuid.uuid4(), "qr", now=session.expires_at)
        db.add.assert_not_called()

    def test_expire_meme_si_toujours_active(self):
        session = make_session(is_active=True)
        db = make_db(session)
        with pytest.raises(Expired):
            admit_check_in(db, pin(session), uuid.uuid4(), "pin", now=T0 + timedelta(minutes=6))

    def test_qr_session_terminee_est_expiree(self):
        """Bon code mais session terminée : Expired, pas NotFound."""
        session = make_session(is_active=False, ended_at=T0 + timedelta(minutes=1))
        db = make_db(session)
        with pytest.raises(Expired):
            admit_check_in(db, qr(session), uuid.uuid4(), "qr", now=T0 + timedelta(minutes=2))

    def test_lookup_pin_filtre_les_sessions_actives(self):
        """Après endSession, le PIN ne résout plus rien : la requête filtre is_active."""
        db = make_db(session=None)
        with pytest.raises(NotFound):
            admit_check_in(db, PinLookup(pin_code="123456"), uuid.uuid4(), "pin", now=T0)
        clause = where_clause(db)
        assert "pin_code" in clause
        assert "is_active" in clause

    def test_lookup_qr_ignore_le_flag_actif(self):
        session = make_session()
        db = make_db(session)
        admit_check_in(db, qr(session), uuid.uuid4(), "qr", now=T0)
        clause = where_clause(db)
        assert "qr_token" in clause
        assert "is_active" not in clause


# ============================================================
# Doublons : arbitrés par la contrainte UNIQUE en base
# ============================================================

class TestDoublons:
    def test_violation_unicite_donne_duplicate(self):
        session = make_session()
        db = make_db(session)
        db.commit.side_effect = unique_violation()

        with pytest.raises(Duplicate):
            admit_check_in(db, pin(session), uuid.uuid4(), "pin", now=T0)
        db.rollback.assert_called_once()

    def test_deux_appels_un_succes_un_doublon(self):
        session = make_session()
        db = make_db(session)
        student = uuid.uuid4()
        db.commit.side_effect = [None, unique_violation()]

        admit_check_in(db, qr(session), student, "qr", now=T0)
        with pytest.raises(Duplicate):
            admit_check_in(db, pin(session), student, "pin", now=T0)

    def test_aucun_select_prealable_sur_les_enregistrements(self):
        """Le seul SELECT est la résolution de session : pas de check-then-insert."""
        session = make_session()
        db = make_db(session)
        admit_check_in(db, qr(session), uuid.uuid4(), "qr", now=T0)
        assert db.execute.call_count == 1

    def test_autre_violation_integrite_donne_validation(self):
        session = make_session()
        db = make_db(session)
        db.commit.side_effect = fk_violation()

        with pytest.raises(ValidationError):
            admit_check_in(db, qr(session), uuid.uuid4(), "qr", now=T0)
        db.rollback.assert_called_once()


# ============================================================
# Scénario : session de 5 minutes
# ============================================================

def test_scenario_session_cinq_minutes():
    session = make_session(duration=timedelta(minutes=5))
    db = make_db(session)
    student = uuid.uuid4()
    db.commit.side_effect = [None, unique_violation()]

    admit_check_in(db, pin(session), student, "pin", now=T0 + timedelta(minutes=4))

    with pytest.raises(Duplicate):
        admit_check_in(db, pin(session), student, "pin", now=T0 + timedelta(minutes=4, seconds=30))

    with pytest.raises(Expired):
        admit_check_in(db, pin(session), student, "pin", now=T0 + timedelta(minutes=6))


# ============================================================
# Rejeu hors-ligne : validé à l'heure de capture
# ============================================================

class TestRejeuHorsLigne:
    def test_capture_avant_expiration_rejouee_apres(self):
        """Capture à T0, expiration T0+10, rejeu à T0+15 : accepté."""
        session = make_session(duration=timedelta(minutes=10))
        db = make_db(session)

        record = admit_check_in(
            db, qr(session), uuid.uuid4(), "offline_qr",
            client_captured_at=T0, now=T0 + timedelta(minutes=15),
        )

        assert record.check_in_method == "offline_qr"
        assert record.synced_from_offline is True
        assert record.offline_scanned_at == T0
        assert record.checked_in_at == T0 + timedelta(minutes=15)

    def test_capture_apres_expiration(self):
        session = make_session(duration=timedelta(minutes=10))
        db = make_db(session)
        with pytest.raises(Expired):
            admit_check_in(
                db, qr(session), uuid.uuid4(), "offline_qr",
                client_captured_at=T0 + timedelta(minutes=10), now=T0 + timedelta(minutes=15),
            )

    def test_capture_avant_cloture_explicite(self):
        session = make_session(duration=timedelta(minutes=10), is_active=False, ended_at=T0 + timedelta(minutes=3))
        db = make_db(session)
        record = admit_check_in(
            db, qr(session), uuid.uuid4(), "offline_qr",
            client_captured_at=T0 + timedelta(minutes=2), now=T0 + timedelta(minutes=20),
        )
        assert record.synced_from_offline is True

    def test_capture_apres_cloture_explicite(self):
        session = make_session(duration=timedelta(minutes=10), is_active=False, ended_at=T0 + timedelta(minutes=3))
        db = make_db(session)
        with pytest.raises(Expired):
            admit_check_in(
                db, qr(session), uuid.uuid4(), "offline_qr",
                client_captured_at=T0 + timedelta(minutes=4), now=T0 + timedelta(minutes=20),
            )

    def test_capture_dans_le_futur(self):
        session = make_session()
        db = make_db(session)
        with pytest.raises(ValidationError, match="futur"):
            admit_check_in(
                db, qr(session), uuid.uuid4(), "offline_qr",
                client_captured_at=T0 + timedelta(hours=1), now=T0,
            )

    def test_capture_avant_ouverture(self):
        session = make_session()
        db = make_db(session)
        with pytest.raises(ValidationError, match="précède"):
            admit_check_in(
                db, qr(session), uuid.uuid4(), "offline_qr",
                client_captured_at=T0 - timedelta(hours=1), now=T0 + timedelta(minutes=1),
            )

    def test_capture_naive_consideree_utc(self):
        session = make_session(duration=timedelta(minutes=10))
        db = make_db(session)
        record = admit_check_in(
            db, qr(session), uuid.uuid4(), "offline_qr",
            client_captured_at=datetime(2026, 3, 2, 9, 1), now=T0 + timedelta(minutes=30),
        )
        assert record.offline_scanned_at == T0 + timedelta(minutes=1)


# ============================================================
# Validation des entrées
# ============================================================

class TestValidation:
    def test_rejeu_sans_heure_de_capture(self):
        session = make_session()
        with pytest.raises(ValidationError):
            admit_check_in(make_db(session), qr(session), uuid.uuid4(), "offline_qr", now=T0)

    def test_heure_de_capture_sur_check_in_direct(self):
        session = make_session()
        with pytest.raises(ValidationError):
            admit_check_in(make_db(session), qr(session), uuid.uuid4(), "qr", client_captured_at=T0, now=T0)

    def test_pin_avec_methode_qr(self):
        session = make_session()
        with pytest.raises(ValidationError):
            admit_check_in(make_db(session), pin(session), uuid.uuid4(), "qr", now=T0)

    def test_qr_avec_methode_pin(self):
        session = make_session()
        with pytest.raises(ValidationError):
            admit_check_in(make_db(session), qr(session), uuid.uuid4(), "pin", now=T0)

    def test_methode_inconnue(self):
        session = make_session()
        with pytest.raises(ValidationError):
            admit_check_in(make_db(session), qr(session), uuid.uuid4(), "bluetooth", now=T0)

    def test_etudiant_manquant(self):
        session = make_session()
        db = make_db(session)
        with pytest.raises(ValidationError):
            admit_check_in(db, qr(session), None, "qr", now=T0)
        db.execute.assert_not_called()


def test_method_for_qr():
    assert method_for_qr(None) == "qr"
    assert method_for_qr(T0) == "offline_qr"
