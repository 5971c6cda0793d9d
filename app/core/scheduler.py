from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import OperationalError, DBAPIError
from datetime import timezone
from functools import wraps
import logging
import time

from app.core.exceptions import ConflictError
from app.db.session import SessionLocal
from app.services.recurrence import recurrence_service
from app.services.schedule import class_session_service
from app.services.waitlist import waitlist_service

logger = logging.getLogger(__name__)

# Variable global para mantener referencia al scheduler
_scheduler = None


def retry_on_db_error(max_retries=3, delay=2):
    """
    Decorator para reintentar operaciones en caso de errores de BD.

    Útil para scheduled tasks que pueden fallar por conexiones cerradas
    por pgbouncer o timeouts transitorios. También reintenta ConflictError:
    la unidad de trabajo ya agotó su reintento interno por contención.

    Args:
        max_retries: Número máximo de reintentos (default: 3)
        delay: Tiempo base de espera entre reintentos en segundos (default: 2)
               Se aplica backoff exponencial: delay * (attempt + 1)
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except (OperationalError, DBAPIError, ConflictError) as e:
                    if attempt < max_retries - 1:
                        wait_time = delay * (attempt + 1)  # Backoff exponencial
                        logger.warning(
                            f"DB error in {func.__name__}, retry {attempt + 1}/{max_retries} "
                            f"after {wait_time}s: {str(e)}"
                        )
                        time.sleep(wait_time)
                    else:
                        logger.error(
                            f"Max retries ({max_retries}) reached for {func.__name__}: {str(e)}",
                            exc_info=True
                        )
                        raise
                except Exception as e:
                    # Para otros errores, no reintentar
                    logger.error(f"Non-DB error in {func.__name__}: {str(e)}", exc_info=True)
                    raise
        return wrapper
    return decorator


@retry_on_db_error(max_retries=3, delay=2)
def extend_recurrence_horizon():
    """
    Avanza el horizonte de todas las reglas de recurrencia activas generando
    las sesiones que falten.
    """
    logger.info("Running scheduled task: extend_recurrence_horizon")
    db = SessionLocal()
    try:
        created = recurrence_service.extend_all_rules(db)
        logger.info(f"extend_recurrence_horizon: {created} sesiones nuevas")
        return created
    finally:
        db.close()


@retry_on_db_error(max_retries=3, delay=2)
def mark_completed_sessions():
    """
    Marca como completadas las sesiones cuya hora de finalización ya pasó.
    También actualiza sesiones a IN_PROGRESS cuando están dentro del horario.
    """
    logger.info("Running scheduled task: mark_completed_sessions")
    db = SessionLocal()
    try:
        return class_session_service.update_session_statuses(db)
    finally:
        db.close()


@retry_on_db_error(max_retries=3, delay=2)
def reconcile_waitlists():
    """
    Promueve miembros en lista de espera de sesiones futuras con plazas libres
    (p.ej. si la promoción tras una cancelación falló).
    """
    logger.info("Running scheduled task: reconcile_waitlists")
    db = SessionLocal()
    try:
        return waitlist_service.reconcile(db)
    finally:
        db.close()


def init_scheduler():
    """
    Inicializa el programador de tareas
    """
    global _scheduler

    logger.info("Initializing scheduler with UTC timezone")
    _scheduler = AsyncIOScheduler(timezone=timezone.utc)

    # Extender el horizonte de sesiones recurrentes cada día
    _scheduler.add_job(
        extend_recurrence_horizon,
        trigger=CronTrigger(hour=3, minute=0),  # 03:00 UTC
        id='recurrence_horizon',
        replace_existing=True
    )

    # Marcar sesiones como en curso / completadas cada 15 minutos
    _scheduler.add_job(
        mark_completed_sessions,
        trigger=CronTrigger(minute='*/15'),
        id='session_completion',
        replace_existing=True
    )

    # Reconciliar listas de espera cada 10 minutos
    _scheduler.add_job(
        reconcile_waitlists,
        trigger=CronTrigger(minute='*/10'),
        id='waitlist_reconciliation',
        replace_existing=True
    )

    _scheduler.start()
    logger.info("Scheduler started")
    return _scheduler


def get_scheduler():
    global _scheduler
    return _scheduler
