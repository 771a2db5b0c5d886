"""
Planificateur APScheduler pour la désactivation des sessions expirées.

Le job tourne toutes les SESSION_EXPIRY_SWEEP_SECONDS et passe à inactive
les sessions dont expires_at est dépassé, ce qui libère leur PIN et le
créneau « session active » de leur cours.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import SQLAlchemyError

from attendance_app.config import settings
from attendance_app.database import session_scope

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def _expire_sessions_scheduled() -> None:
    """
    Tâche planifiée : clôture les sessions actives expirées.
    Import local pour éviter les imports circulaires.
    """
    from attendance_app.services.session_service import close_expired_sessions

    try:
        with session_scope() as db:
            count = close_expired_sessions(db)
    except SQLAlchemyError as exc:
        logger.error("Erreur lors du balayage des sessions expirées : %s", exc)
        return
    if count:
        logger.debug("Balayage des sessions : %d session(s) clôturée(s)", count)


def start_scheduler() -> None:
    """Démarre le planificateur en arrière-plan (appelé au démarrage de l'API)."""
    scheduler.add_job(
        _expire_sessions_scheduled,
        trigger="interval",
        seconds=settings.SESSION_EXPIRY_SWEEP_SECONDS,
        id="attendance_session_expiry_sweep",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        "Scheduler démarré, balayage des sessions expirées toutes les %d s.",
        settings.SESSION_EXPIRY_SWEEP_SECONDS,
    )


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
