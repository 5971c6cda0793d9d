"""
Ciclo de vida de las reservas.

Estados por (miembro, sesión): NONE -> CONFIRMED -> {CANCELLED | ATTENDED | NO_SHOW}.
Volver a reservar tras una cancelación crea un registro nuevo; las reservas
canceladas se conservan como historial.

La decisión de aforo se toma siempre dentro de una unidad de trabajo que
tiene el bloqueo de la sesión: se vuelve a comprobar la reserva duplicada,
se cuentan las confirmadas y se inserta, todo antes del único commit.
"""
from datetime import datetime, timedelta
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from app.core.exceptions import (
    AlreadyExistsError,
    BookingClosedError,
    BookingNotYetOpenError,
    CancellationDeadlinePassedError,
    EntitlementRequiredError,
    ForbiddenError,
    InvalidStateError,
    MemberInactiveError,
    NotFoundError,
    SessionFullError,
)
from app.core.timezone_utils import ensure_utc, utc_now
from app.db.unit_of_work import run_in_transaction
from app.models.schedule import Booking, BookingStatus, ClassSessionStatus
from app.repositories.schedule import (
    booking_repository,
    class_session_repository,
    waitlist_repository,
)
from app.services.capacity import capacity_service
from app.services.entitlement import (
    AttendanceRecorder,
    EntitlementGate,
    membership_attendance_recorder,
    membership_entitlement_gate,
)
from app.services.waitlist import WaitlistService, waitlist_service as default_waitlist_service

logger = logging.getLogger(__name__)


class BookingService:

    def __init__(
        self,
        entitlement_gate: Optional[EntitlementGate] = None,
        attendance_recorder: Optional[AttendanceRecorder] = None,
        waitlist: Optional[WaitlistService] = None,
    ):
        self.entitlement_gate = entitlement_gate or membership_entitlement_gate
        self.attendance_recorder = attendance_recorder or membership_attendance_recorder
        self.waitlist = waitlist or default_waitlist_service

    def book_session(
        self, db: Session, member_id: int, session_id: int, gym_id: int, now: Optional[datetime] = None
    ) -> Booking:
        """
        Reserva una plaza en una sesión.

        Args:
            db: Sesión de base de datos
            member_id: ID del miembro
            session_id: ID de la sesión de clase
            gym_id: ID del gimnasio
            now: Instante de referencia (UTC); por defecto la hora actual

        Returns:
            La reserva confirmada

        Raises:
            NotFoundError: Si la sesión no existe en el gimnasio
            InvalidStateError: Si la sesión no está programada
            BookingNotYetOpenError / BookingClosedError: Fuera de la ventana de reserva
            AlreadyExistsError: Si el miembro ya tiene una reserva confirmada
            MemberInactiveError / EntitlementRequiredError: Sin derecho de acceso
            SessionFullError: Si no quedan plazas
        """
        now = now or utc_now()

        session = class_session_repository.get_with_class(db, session_id=session_id, gym_id=gym_id)
        if not session:
            raise NotFoundError(f"Sesión {session_id} no encontrada", session_id=session_id)
        if session.status != ClassSessionStatus.SCHEDULED:
            raise InvalidStateError(
                "La sesión no admite reservas en su estado actual",
                session_id=session_id, status=session.status.value
            )

        class_obj = session.class_definition
        start_time = ensure_utc(session.start_time)
        opens_at = start_time - timedelta(hours=class_obj.booking_opens_hours)
        closes_at = start_time - timedelta(minutes=class_obj.booking_closes_minutes)
        if now < opens_at:
            raise BookingNotYetOpenError(
                "Las reservas para esta sesión aún no están abiertas", session_id=session_id, opens_at=opens_at
            )
        if now > closes_at:
            raise BookingClosedError(
                "Las reservas para esta sesión ya están cerradas", session_id=session_id, closes_at=closes_at
            )

        if booking_repository.get_confirmed(db, session_id=session_id, member_id=member_id):
            raise AlreadyExistsError(
                "Ya tienes una reserva para esta sesión", session_id=session_id, member_id=member_id
            )

        if not self.entitlement_gate.is_member_active(db, member_id, gym_id):
            raise MemberInactiveError("La membresía del miembro no está activa", member_id=member_id)
        if not self.entitlement_gate.has_entitlement(db, member_id, gym_id):
            raise EntitlementRequiredError(
                "Se requiere una membresía activa o créditos de clase para reservar", member_id=member_id
            )

        def work(db: Session) -> Booking:
            locked = class_session_repository.lock_session(db, session_id=session_id)
            if not locked:
                raise NotFoundError(f"Sesión {session_id} no encontrada", session_id=session_id)
            if locked.status != ClassSessionStatus.SCHEDULED:
                raise InvalidStateError(
                    "La sesión no admite reservas en su estado actual",
                    session_id=session_id, status=locked.status.value
                )
            if booking_repository.get_confirmed(db, session_id=session_id, member_id=member_id):
                raise AlreadyExistsError(
                    "Ya tienes una reserva para esta sesión", session_id=session_id, member_id=member_id
                )

            availability = capacity_service.compute(db, locked)
            if availability.available <= 0:
                raise SessionFullError(
                    "La sesión está completa",
                    session_id=session_id,
                    capacity=availability.capacity,
                    waitlist_enabled=locked.class_definition.waitlist_enabled,
                    waitlist_count=availability.waitlist_count,
                )

            booking = booking_repository.create(db, obj_in={
                "session_id": session_id,
                "member_id": member_id,
                "status": BookingStatus.CONFIRMED,
                "booked_at": now,
                "promoted_from_waitlist": False,
            }, gym_id=gym_id)

            entry = waitlist_repository.get_entry(db, session_id=session_id, member_id=member_id)
            if entry:
                waitlist_repository.remove_and_renumber(db, entry=entry)

            class_session_repository.refresh_participant_count(db, session=locked)
            return booking

        booking = run_in_transaction(db, work, name="book_session")
        logger.info(f"Reserva {booking.id} confirmada: miembro {member_id}, sesión {session_id}")
        return booking

    def cancel_booking(
        self,
        db: Session,
        booking_id: int,
        gym_id: int,
        acting_member_id: Optional[int] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Cancela una reserva confirmada y, ya confirmada la cancelación, promueve
        al primero de la lista de espera.

        Si se indica `acting_member_id` se comprueba que sea el dueño de la
        reserva; las cancelaciones hechas por el staff lo omiten.

        Raises:
            NotFoundError: Si la reserva no existe en el gimnasio
            ForbiddenError: Si la reserva no pertenece al miembro que cancela
            InvalidStateError: Si la reserva no está confirmada
            CancellationDeadlinePassedError: Si ya pasó el plazo de cancelación
        """
        now = now or utc_now()

        booking = booking_repository.get(db, id=booking_id, gym_id=gym_id)
        if not booking:
            raise NotFoundError(f"Reserva {booking_id} no encontrada", booking_id=booking_id)
        if acting_member_id is not None and booking.member_id != acting_member_id:
            raise ForbiddenError("No puedes cancelar la reserva de otro miembro", booking_id=booking_id)
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidStateError(
                "Solo se pueden cancelar reservas confirmadas",
                booking_id=booking_id, status=booking.status.value
            )

        session = class_session_repository.get_with_class(db, session_id=booking.session_id)
        start_time = ensure_utc(session.start_time)
        cancellation_minutes = session.class_definition.cancellation_minutes
        minutes_until_start = (start_time - now).total_seconds() / 60
        if minutes_until_start < cancellation_minutes:
            raise CancellationDeadlinePassedError(
                f"Las cancelaciones deben hacerse al menos {cancellation_minutes} minutos antes del inicio",
                booking_id=booking_id,
                deadline=start_time - timedelta(minutes=cancellation_minutes),
            )

        session_id = booking.session_id

        def work(db: Session) -> Booking:
            locked = class_session_repository.lock_session(db, session_id=session_id)
            current = db.query(Booking).filter(Booking.id == booking_id).populate_existing().first()
            if current.status != BookingStatus.CONFIRMED:
                raise InvalidStateError(
                    "Solo se pueden cancelar reservas confirmadas",
                    booking_id=booking_id, status=current.status.value
                )
            current.status = BookingStatus.CANCELLED
            current.cancelled_at = now
            current.cancellation_reason = reason
            class_session_repository.refresh_participant_count(db, session=locked)
            return current

        booking = run_in_transaction(db, work, name="cancel_booking")
        logger.info(f"Reserva {booking_id} cancelada (sesión {session_id})")

        # La cancelación ya está confirmada; un fallo al promover no la deshace
        try:
            self.waitlist.promote_next(db, session_id, now=now)
        except Exception as e:
            logger.error(
                f"Error promoviendo la lista de espera de la sesión {session_id} tras cancelar la reserva "
                f"{booking_id}: {e}",
                exc_info=True
            )

        db.refresh(booking)
        return booking

    def _finalize(
        self, db: Session, booking_id: int, gym_id: int, new_status: BookingStatus, now: datetime
    ) -> Booking:
        booking = booking_repository.get(db, id=booking_id, gym_id=gym_id)
        if not booking:
            raise NotFoundError(f"Reserva {booking_id} no encontrada", booking_id=booking_id)
        session_id = booking.session_id

        def work(db: Session) -> Booking:
            locked = class_session_repository.lock_session(db, session_id=session_id)
            current = db.query(Booking).filter(Booking.id == booking_id).populate_existing().first()
            if current.status != BookingStatus.CONFIRMED:
                raise InvalidStateError(
                    f"La reserva ya está en estado {current.status.value}",
                    booking_id=booking_id, status=current.status.value
                )
            current.status = new_status
            if new_status == BookingStatus.ATTENDED:
                current.attended_at = now
                self.attendance_recorder.record_attendance(
                    db, current.member_id, current.gym_id, session_id, now
                )
            class_session_repository.refresh_participant_count(db, session=locked)
            return current

        booking = run_in_transaction(db, work, name=f"mark_{new_status.value}")
        logger.info(f"Reserva {booking_id} marcada como {new_status.value}")
        return booking

    def mark_attended(
        self, db: Session, booking_id: int, gym_id: int, now: Optional[datetime] = None
    ) -> Booking:
        """Registra la asistencia y avisa al registro de asistencias en la misma unidad"""
        return self._finalize(db, booking_id, gym_id, BookingStatus.ATTENDED, now or utc_now())

    def mark_no_show(
        self, db: Session, booking_id: int, gym_id: int, now: Optional[datetime] = None
    ) -> Booking:
        return self._finalize(db, booking_id, gym_id, BookingStatus.NO_SHOW, now or utc_now())

    def get_member_bookings(
        self, db: Session, member_id: int, gym_id: int, upcoming: bool = True,
        limit: int = 20, now: Optional[datetime] = None
    ) -> List[Booking]:
        return booking_repository.get_member_bookings(
            db, member_id=member_id, gym_id=gym_id, now=now or utc_now(), upcoming=upcoming, limit=limit
        )

    def get_session_bookings(
        self, db: Session, session_id: int, gym_id: int, include_cancelled: bool = False
    ) -> List[Booking]:
        """Lista de reservas de una sesión para el staff"""
        if not class_session_repository.exists(db, id=session_id, gym_id=gym_id):
            raise NotFoundError(f"Sesión {session_id} no encontrada", session_id=session_id)
        return booking_repository.get_by_session(db, session_id=session_id, include_cancelled=include_cancelled)


booking_service = BookingService()
