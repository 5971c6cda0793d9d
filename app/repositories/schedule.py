from typing import Any, List, Optional, Set
from datetime import datetime, date
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import func, or_, update

from app.core.timezone_utils import ensure_utc
from app.repositories.base import BaseRepository
from app.models.schedule import (
    Class,
    RecurrenceRule,
    ClassSession,
    Booking,
    WaitlistEntry,
    ClassSessionStatus,
    BookingStatus,
)
from app.schemas.schedule import (
    ClassCreate,
    ClassUpdate,
    RecurrenceRuleCreate,
    ClassSessionCreate,
    SessionCapacityUpdate,
)


class ClassRepository(BaseRepository[Class, ClassCreate, ClassUpdate]):
    def get_by_gym(
        self, db: Session, *, gym_id: int, active_only: bool = False, skip: int = 0, limit: int = 100
    ) -> List[Class]:
        """Obtener las clases de un gimnasio"""
        query = db.query(Class).filter(Class.gym_id == gym_id)
        if active_only:
            query = query.filter(Class.is_active == True)  # noqa: E712
        return query.order_by(Class.name).offset(skip).limit(limit).all()


class RecurrenceRuleRepository(BaseRepository[RecurrenceRule, RecurrenceRuleCreate, Any]):
    def get_by_class(self, db: Session, *, class_id: int, gym_id: Optional[int] = None) -> List[RecurrenceRule]:
        query = db.query(RecurrenceRule).filter(RecurrenceRule.class_id == class_id)
        if gym_id is not None:
            query = query.filter(RecurrenceRule.gym_id == gym_id)
        return query.order_by(RecurrenceRule.id).all()

    def get_expandable(self, db: Session, *, today: date) -> List[RecurrenceRule]:
        """Reglas activas cuya fecha de fin no ha pasado"""
        return db.query(RecurrenceRule).filter(
            RecurrenceRule.is_active == True,  # noqa: E712
            or_(RecurrenceRule.end_date.is_(None), RecurrenceRule.end_date >= today)
        ).order_by(RecurrenceRule.id).all()


class ClassSessionRepository(BaseRepository[ClassSession, ClassSessionCreate, SessionCapacityUpdate]):
    def lock_session(self, db: Session, *, session_id: int) -> Optional[ClassSession]:
        """
        Toma el bloqueo de la sesión y devuelve la fila recién leída.

        El UPDATE de occupancy_version bloquea la fila en PostgreSQL y adquiere
        el lock de escritura en SQLite; las lecturas posteriores dentro de la
        misma transacción ven el estado confirmado más reciente. Devuelve None
        si la sesión no existe.
        """
        result = db.execute(
            update(ClassSession)
            .where(ClassSession.id == session_id)
            .values(occupancy_version=ClassSession.occupancy_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return (
            db.query(ClassSession)
            .options(joinedload(ClassSession.class_definition))
            .filter(ClassSession.id == session_id)
            .populate_existing()
            .first()
        )

    def get_with_class(
        self, db: Session, *, session_id: int, gym_id: Optional[int] = None
    ) -> Optional[ClassSession]:
        """Obtener la sesión con su clase cargada"""
        query = db.query(ClassSession).options(
            joinedload(ClassSession.class_definition)
        ).filter(ClassSession.id == session_id)
        if gym_id is not None:
            query = query.filter(ClassSession.gym_id == gym_id)
        return query.first()

    def get_existing_start_times(
        self, db: Session, *, class_id: int, start: datetime, end: datetime
    ) -> Set[datetime]:
        """Horas de inicio (UTC) ya existentes para una clase en la ventana dada"""
        rows = db.query(ClassSession.start_time).filter(
            ClassSession.class_id == class_id,
            ClassSession.start_time >= start,
            ClassSession.start_time <= end
        ).all()
        return {ensure_utc(row[0]) for row in rows}

    def get_filtered(
        self, db: Session, *, gym_id: int, class_id: Optional[int] = None,
        start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
        status: Optional[ClassSessionStatus] = None, skip: int = 0, limit: int = 100
    ) -> List[ClassSession]:
        """
        Obtener sesiones de un gimnasio con filtros opcionales.

        Args:
            db: Sesión de base de datos
            gym_id: ID del gimnasio
            class_id: Filtrar por clase
            start_date: Inicio del rango (UTC)
            end_date: Fin del rango (UTC)
            status: Filtrar por estado
            skip: Número de registros a omitir (paginación)
            limit: Número máximo de registros a devolver (paginación)
        """
        query = db.query(ClassSession).filter(ClassSession.gym_id == gym_id)
        if class_id is not None:
            query = query.filter(ClassSession.class_id == class_id)
        if start_date is not None:
            query = query.filter(ClassSession.start_time >= start_date)
        if end_date is not None:
            query = query.filter(ClassSession.start_time <= end_date)
        if status is not None:
            query = query.filter(ClassSession.status == status)
        return query.order_by(ClassSession.start_time).offset(skip).limit(limit).all()

    def get_upcoming_by_class(self, db: Session, *, class_id: int, now: datetime) -> List[ClassSession]:
        """Sesiones programadas futuras de una clase"""
        return db.query(ClassSession).filter(
            ClassSession.class_id == class_id,
            ClassSession.status == ClassSessionStatus.SCHEDULED,
            ClassSession.start_time > now
        ).order_by(ClassSession.start_time).all()

    def get_sessions_to_start(self, db: Session, *, now: datetime) -> List[ClassSession]:
        return db.query(ClassSession).filter(
            ClassSession.status == ClassSessionStatus.SCHEDULED,
            ClassSession.start_time <= now,
            ClassSession.end_time > now
        ).all()

    def get_sessions_to_complete(self, db: Session, *, now: datetime) -> List[ClassSession]:
        return db.query(ClassSession).filter(
            ClassSession.status.in_([ClassSessionStatus.SCHEDULED, ClassSessionStatus.IN_PROGRESS]),
            ClassSession.end_time <= now
        ).all()

    def get_session_ids_with_waitlist(self, db: Session, *, now: datetime) -> List[int]:
        """IDs de sesiones programadas futuras que tienen miembros en lista de espera"""
        rows = db.query(ClassSession.id).join(
            WaitlistEntry, WaitlistEntry.session_id == ClassSession.id
        ).filter(
            ClassSession.status == ClassSessionStatus.SCHEDULED,
            ClassSession.start_time > now
        ).distinct().order_by(ClassSession.id).all()
        return [row[0] for row in rows]

    def refresh_participant_count(self, db: Session, *, session: ClassSession) -> int:
        """
        Recalcula el contador de participantes a partir de las reservas confirmadas.
        No hace commit: se llama dentro de la unidad que modificó las reservas.
        """
        db.flush()
        count = booking_repository.count_confirmed(db, session_id=session.id)
        session.current_participants = count
        db.flush()
        return count


class BookingRepository(BaseRepository[Booking, Any, Any]):
    def count_confirmed(self, db: Session, *, session_id: int) -> int:
        return db.query(func.count(Booking.id)).filter(
            Booking.session_id == session_id,
            Booking.status == BookingStatus.CONFIRMED
        ).scalar() or 0

    def get_confirmed(self, db: Session, *, session_id: int, member_id: int) -> Optional[Booking]:
        """Reserva confirmada de un miembro en una sesión, si existe"""
        return db.query(Booking).filter(
            Booking.session_id == session_id,
            Booking.member_id == member_id,
            Booking.status == BookingStatus.CONFIRMED
        ).first()

    def get_by_session(
        self, db: Session, *, session_id: int, include_cancelled: bool = False
    ) -> List[Booking]:
        query = db.query(Booking).filter(Booking.session_id == session_id)
        if not include_cancelled:
            query = query.filter(Booking.status != BookingStatus.CANCELLED)
        return query.order_by(Booking.booked_at, Booking.id).all()

    def get_member_bookings(
        self, db: Session, *, member_id: int, gym_id: int, now: datetime,
        upcoming: bool = True, limit: int = 20
    ) -> List[Booking]:
        """
        Reservas confirmadas o asistidas de un miembro.
        Las próximas (desde `now`) en orden ascendente; sin `upcoming` se
        devuelven todas, de la más reciente a la más antigua.
        """
        query = db.query(Booking).join(
            ClassSession, Booking.session_id == ClassSession.id
        ).options(
            joinedload(Booking.session)
        ).filter(
            Booking.member_id == member_id,
            Booking.gym_id == gym_id,
            Booking.status.in_([BookingStatus.CONFIRMED, BookingStatus.ATTENDED])
        )
        if upcoming:
            query = query.filter(ClassSession.start_time >= now).order_by(ClassSession.start_time.asc())
        else:
            query = query.order_by(ClassSession.start_time.desc())
        return query.limit(limit).all()

    def cancel_confirmed_for_session(
        self, db: Session, *, session_id: int, cancelled_at: datetime, reason: Optional[str] = None
    ) -> int:
        """Cancela en bloque las reservas confirmadas de una sesión. Devuelve cuántas"""
        result = db.execute(
            update(Booking)
            .where(Booking.session_id == session_id, Booking.status == BookingStatus.CONFIRMED)
            .values(status=BookingStatus.CANCELLED, cancelled_at=cancelled_at, cancellation_reason=reason)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount


class WaitlistRepository(BaseRepository[WaitlistEntry, Any, Any]):
    def count(self, db: Session, *, session_id: int) -> int:
        return db.query(func.count(WaitlistEntry.id)).filter(
            WaitlistEntry.session_id == session_id
        ).scalar() or 0

    def get_entry(self, db: Session, *, session_id: int, member_id: int) -> Optional[WaitlistEntry]:
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.session_id == session_id,
            WaitlistEntry.member_id == member_id
        ).first()

    def get_first(self, db: Session, *, session_id: int) -> Optional[WaitlistEntry]:
        """Entrada en la posición más baja (cabeza de la cola)"""
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.session_id == session_id
        ).order_by(WaitlistEntry.position.asc()).first()

    def get_by_session(self, db: Session, *, session_id: int) -> List[WaitlistEntry]:
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.session_id == session_id
        ).order_by(WaitlistEntry.position.asc()).all()

    def remove_and_renumber(self, db: Session, *, entry: WaitlistEntry) -> None:
        """
        Elimina la entrada y decrementa la posición de las posteriores.
        Mantiene las posiciones densas {1..n}.
        """
        session_id, position = entry.session_id, entry.position
        db.delete(entry)
        db.flush()
        db.execute(
            update(WaitlistEntry)
            .where(WaitlistEntry.session_id == session_id, WaitlistEntry.position > position)
            .values(position=WaitlistEntry.position - 1)
            .execution_options(synchronize_session="fetch")
        )

    def remove_all_for_session(self, db: Session, *, session_id: int) -> int:
        removed = db.query(WaitlistEntry).filter(
            WaitlistEntry.session_id == session_id
        ).delete(synchronize_session="fetch")
        return removed


# Instantiate repositories
class_repository = ClassRepository(Class)
recurrence_rule_repository = RecurrenceRuleRepository(RecurrenceRule)
class_session_repository = ClassSessionRepository(ClassSession)
booking_repository = BookingRepository(Booking)
waitlist_repository = WaitlistRepository(WaitlistEntry)
