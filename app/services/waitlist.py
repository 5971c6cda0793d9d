"""
Lista de espera FIFO por sesión.

Las posiciones son densas (1..n) dentro de cada sesión: cada baja (salida,
promoción, reserva directa del mismo miembro o cancelación de la sesión)
decrementa las posiciones posteriores en la misma unidad de trabajo. Todas
las mutaciones toman el bloqueo de la sesión, igual que las reservas, así
que el orden de la cola y el aforo se deciden de forma serializada.
"""
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import (
    AlreadyExistsError,
    FeatureDisabledError,
    InvalidStateError,
    NotFoundError,
    WaitlistFullError,
)
from app.core.timezone_utils import utc_now
from app.db.unit_of_work import run_in_transaction
from app.models.schedule import Booking, BookingStatus, ClassSession, ClassSessionStatus, WaitlistEntry
from app.repositories.schedule import (
    booking_repository,
    class_session_repository,
    waitlist_repository,
)
from app.services.capacity import capacity_service
from app.services.entitlement import EntitlementGate, membership_entitlement_gate

logger = logging.getLogger(__name__)


class WaitlistService:

    def __init__(self, entitlement_gate: Optional[EntitlementGate] = None):
        self.entitlement_gate = entitlement_gate or membership_entitlement_gate

    def _get_session(self, db: Session, session_id: int, gym_id: Optional[int]) -> ClassSession:
        session = class_session_repository.get_with_class(db, session_id=session_id, gym_id=gym_id)
        if not session:
            raise NotFoundError(f"Sesión {session_id} no encontrada", session_id=session_id)
        return session

    def join_waitlist(self, db: Session, member_id: int, session_id: int, gym_id: int) -> WaitlistEntry:
        """
        Añade al miembro al final de la lista de espera de la sesión.

        Raises:
            NotFoundError: Si la sesión no existe
            InvalidStateError: Si la sesión no está programada
            FeatureDisabledError: Si la clase no admite lista de espera
            AlreadyExistsError: Si ya está en la lista o tiene una reserva confirmada
            WaitlistFullError: Si la lista alcanzó su máximo
        """
        session = self._get_session(db, session_id, gym_id)
        if session.status != ClassSessionStatus.SCHEDULED:
            raise InvalidStateError(
                "Solo se puede entrar en lista de espera de sesiones programadas",
                session_id=session_id, status=session.status.value
            )
        if not session.class_definition.waitlist_enabled:
            raise FeatureDisabledError(
                "La lista de espera no está habilitada para esta clase",
                session_id=session_id, class_id=session.class_id
            )

        def work(db: Session) -> WaitlistEntry:
            locked = class_session_repository.lock_session(db, session_id=session_id)
            if not locked:
                raise NotFoundError(f"Sesión {session_id} no encontrada", session_id=session_id)
            if locked.status != ClassSessionStatus.SCHEDULED:
                raise InvalidStateError(
                    "La sesión ya no está programada", session_id=session_id, status=locked.status.value
                )
            if waitlist_repository.get_entry(db, session_id=session_id, member_id=member_id):
                raise AlreadyExistsError(
                    "El miembro ya está en la lista de espera", session_id=session_id, member_id=member_id
                )
            if booking_repository.get_confirmed(db, session_id=session_id, member_id=member_id):
                raise AlreadyExistsError(
                    "El miembro ya tiene una reserva para esta sesión", session_id=session_id, member_id=member_id
                )
            count = waitlist_repository.count(db, session_id=session_id)
            waitlist_max = locked.class_definition.waitlist_max
            if count >= waitlist_max:
                raise WaitlistFullError(
                    "La lista de espera está completa", session_id=session_id, waitlist_max=waitlist_max
                )
            return waitlist_repository.create(db, obj_in={
                "session_id": session_id,
                "member_id": member_id,
                "position": count + 1,
                "joined_at": utc_now(),
            }, gym_id=gym_id)

        entry = run_in_transaction(db, work, name="join_waitlist")
        logger.info(f"Miembro {member_id} en lista de espera de la sesión {session_id}, posición {entry.position}")
        return entry

    def leave_waitlist(self, db: Session, member_id: int, session_id: int, gym_id: int) -> None:
        """
        Saca al miembro de la lista de espera y recompacta las posiciones.

        Raises:
            NotFoundError: Si la sesión no existe o el miembro no está en la lista
        """
        self._get_session(db, session_id, gym_id)

        def work(db: Session) -> int:
            class_session_repository.lock_session(db, session_id=session_id)
            entry = waitlist_repository.get_entry(db, session_id=session_id, member_id=member_id)
            if not entry:
                raise NotFoundError(
                    "El miembro no está en la lista de espera", session_id=session_id, member_id=member_id
                )
            position = entry.position
            waitlist_repository.remove_and_renumber(db, entry=entry)
            return position

        position = run_in_transaction(db, work, name="leave_waitlist")
        logger.info(f"Miembro {member_id} salió de la lista de espera de la sesión {session_id} (posición {position})")

    def _drop_entry(self, db: Session, entry: WaitlistEntry, reason: str) -> None:
        logger.info(
            f"Entrada de lista de espera del miembro {entry.member_id} en sesión {entry.session_id} "
            f"descartada: {reason}"
        )
        waitlist_repository.remove_and_renumber(db, entry=entry)

    def _promotion_allowed(self, db: Session, entry: WaitlistEntry) -> bool:
        if not get_settings().WAITLIST_PROMOTION_CHECKS_ENTITLEMENT:
            return True
        gate = self.entitlement_gate
        return (
            gate.is_member_active(db, entry.member_id, entry.gym_id)
            and gate.has_entitlement(db, entry.member_id, entry.gym_id)
        )

    def promote_next(self, db: Session, session_id: int, now: Optional[datetime] = None) -> Optional[Booking]:
        """
        Promueve la cabeza de la lista de espera a una reserva confirmada si hay plaza.

        No hace nada si la cola está vacía, si no hay plaza libre o si la sesión
        no está programada. No vuelve a validar la ventana de reserva. Las
        entradas de miembros que ya tienen reserva confirmada se descartan y se
        considera la siguiente.

        Returns:
            La reserva creada o None
        """
        now = now or utc_now()

        def work(db: Session) -> Optional[Booking]:
            session = class_session_repository.lock_session(db, session_id=session_id)
            if not session or session.status != ClassSessionStatus.SCHEDULED:
                logger.debug(f"Promoción omitida: sesión {session_id} no disponible")
                return None

            while True:
                entry = waitlist_repository.get_first(db, session_id=session_id)
                if not entry:
                    logger.debug(f"Promoción omitida: lista de espera vacía en sesión {session_id}")
                    return None

                availability = capacity_service.compute(db, session)
                if availability.available <= 0:
                    logger.debug(f"Promoción omitida: sesión {session_id} sin plazas libres")
                    return None

                if booking_repository.get_confirmed(db, session_id=session_id, member_id=entry.member_id):
                    self._drop_entry(db, entry, "ya tiene reserva confirmada")
                    continue
                if not self._promotion_allowed(db, entry):
                    self._drop_entry(db, entry, "sin derecho de acceso vigente")
                    continue

                booking = booking_repository.create(db, obj_in={
                    "session_id": session_id,
                    "member_id": entry.member_id,
                    "status": BookingStatus.CONFIRMED,
                    "booked_at": now,
                    "promoted_from_waitlist": True,
                }, gym_id=session.gym_id)
                waitlist_repository.remove_and_renumber(db, entry=entry)
                class_session_repository.refresh_participant_count(db, session=session)
                return booking

        booking = run_in_transaction(db, work, name="promote_from_waitlist")
        if booking:
            logger.info(
                f"Miembro {booking.member_id} promovido de la lista de espera a la sesión {session_id} "
                f"(reserva {booking.id})"
            )
        return booking

    def fill_from_waitlist(self, db: Session, session_id: int, now: Optional[datetime] = None) -> List[Booking]:
        """Promueve mientras queden plazas libres y entradas en la cola"""
        promoted = []
        while True:
            booking = self.promote_next(db, session_id, now=now)
            if booking is None:
                break
            promoted.append(booking)
        return promoted

    def get_waitlist(self, db: Session, session_id: int, gym_id: int) -> List[WaitlistEntry]:
        self._get_session(db, session_id, gym_id)
        return waitlist_repository.get_by_session(db, session_id=session_id)

    def get_position(self, db: Session, member_id: int, session_id: int, gym_id: int) -> Optional[int]:
        """Posición del miembro en la lista de espera, o None si no está"""
        self._get_session(db, session_id, gym_id)
        entry = waitlist_repository.get_entry(db, session_id=session_id, member_id=member_id)
        return entry.position if entry else None

    def reconcile(self, db: Session, now: Optional[datetime] = None) -> int:
        """
        Rellena desde la lista de espera todas las sesiones futuras con cola.
        Recupera promociones que fallaron tras una cancelación ya confirmada.
        """
        now = now or utc_now()
        total = 0
        for session_id in class_session_repository.get_session_ids_with_waitlist(db, now=now):
            total += len(self.fill_from_waitlist(db, session_id, now=now))
        if total:
            logger.info(f"Reconciliación de listas de espera: {total} promociones")
        return total


waitlist_service = WaitlistService()
