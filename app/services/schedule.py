"""
Administración de clases y sesiones: política de reservas de cada clase,
sesiones puntuales, ajustes de aforo y cancelación administrativa.
"""
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from app.core.exceptions import (
    AlreadyExistsError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from app.core.timezone_utils import normalize_to_utc, utc_now
from app.db.unit_of_work import run_in_transaction
from app.models.gym import Gym
from app.models.schedule import Class, ClassSession, ClassSessionStatus
from app.repositories.schedule import (
    booking_repository,
    class_repository,
    class_session_repository,
    waitlist_repository,
)
from app.schemas.schedule import ClassCreate, ClassSessionCreate, ClassUpdate
from app.services.waitlist import WaitlistService, waitlist_service as default_waitlist_service

logger = logging.getLogger(__name__)


class ClassService:

    def __init__(self, waitlist: Optional[WaitlistService] = None):
        self.waitlist = waitlist or default_waitlist_service

    def get_class(self, db: Session, class_id: int, gym_id: int) -> Class:
        class_obj = class_repository.get(db, id=class_id, gym_id=gym_id)
        if not class_obj:
            raise NotFoundError(f"Clase {class_id} no encontrada", class_id=class_id)
        return class_obj

    def get_classes(
        self, db: Session, gym_id: int, active_only: bool = False, skip: int = 0, limit: int = 100
    ) -> List[Class]:
        return class_repository.get_by_gym(db, gym_id=gym_id, active_only=active_only, skip=skip, limit=limit)

    def create_class(
        self, db: Session, class_data: ClassCreate, gym_id: int, created_by: Optional[int] = None
    ) -> Class:
        def work(db: Session) -> Class:
            obj_in = class_data.model_dump()
            obj_in["created_by"] = created_by
            return class_repository.create(db, obj_in=obj_in, gym_id=gym_id)

        class_obj = run_in_transaction(db, work, name="create_class")
        logger.info(f"Clase {class_obj.id} '{class_obj.name}' creada en gym {gym_id}")
        return class_obj

    def update_class(
        self, db: Session, class_id: int, class_data: ClassUpdate, gym_id: int, now: Optional[datetime] = None
    ) -> Class:
        """
        Actualiza la política de una clase.

        Reducir `max_capacity` por debajo de las reservas confirmadas de alguna
        sesión futura sin capacidad propia falla con InvalidStateError. Si la
        capacidad aumenta, esas sesiones se rellenan desde la lista de espera.
        """
        now = now or utc_now()
        update_data = class_data.model_dump(exclude_unset=True)

        def work(db: Session) -> Tuple[Class, List[int]]:
            class_obj = self.get_class(db, class_id, gym_id)
            old_capacity = class_obj.max_capacity
            new_capacity = update_data.get("max_capacity", old_capacity)

            affected = []
            if new_capacity != old_capacity:
                for session in class_session_repository.get_upcoming_by_class(db, class_id=class_id, now=now):
                    if session.override_capacity is not None:
                        continue
                    class_session_repository.lock_session(db, session_id=session.id)
                    booked = booking_repository.count_confirmed(db, session_id=session.id)
                    if booked > new_capacity:
                        raise InvalidStateError(
                            "La nueva capacidad es menor que las reservas confirmadas de una sesión",
                            class_id=class_id, session_id=session.id, booked=booked, capacity=new_capacity
                        )
                    affected.append(session.id)

            class_obj = class_repository.update(db, db_obj=class_obj, obj_in=update_data)
            to_fill = affected if new_capacity > old_capacity else []
            return class_obj, to_fill

        class_obj, to_fill = run_in_transaction(db, work, name="update_class")
        logger.info(f"Clase {class_id} actualizada (gym {gym_id})")

        for session_id in to_fill:
            self.waitlist.fill_from_waitlist(db, session_id, now=now)

        db.refresh(class_obj)
        return class_obj


class ClassSessionService:

    def __init__(self, waitlist: Optional[WaitlistService] = None):
        self.waitlist = waitlist or default_waitlist_service

    def get_session(self, db: Session, session_id: int, gym_id: int) -> ClassSession:
        session = class_session_repository.get_with_class(db, session_id=session_id, gym_id=gym_id)
        if not session:
            raise NotFoundError(f"Sesión {session_id} no encontrada", session_id=session_id)
        return session

    def get_sessions(
        self, db: Session, gym_id: int, class_id: Optional[int] = None,
        start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
        status: Optional[ClassSessionStatus] = None, skip: int = 0, limit: int = 100,
        now: Optional[datetime] = None
    ) -> List[ClassSession]:
        """
        Listado de sesiones del gimnasio. Sin rango explícito devuelve las
        próximas (desde ahora).
        """
        gym_timezone = self._gym_timezone(db, gym_id)
        start = normalize_to_utc(start_date, gym_timezone) if start_date else (now or utc_now())
        end = normalize_to_utc(end_date, gym_timezone) if end_date else None
        return class_session_repository.get_filtered(
            db, gym_id=gym_id, class_id=class_id, start_date=start, end_date=end,
            status=status, skip=skip, limit=limit
        )

    def _gym_timezone(self, db: Session, gym_id: int) -> str:
        tz = db.query(Gym.timezone).filter(Gym.id == gym_id).scalar()
        return tz or "UTC"

    def create_session(
        self, db: Session, session_data: ClassSessionCreate, gym_id: int, created_by: Optional[int] = None
    ) -> ClassSession:
        """
        Crea una sesión puntual.

        Las horas sin zona horaria se interpretan en la zona del gimnasio. Si no
        se indica `end_time` se calcula con la duración de la clase.

        Raises:
            NotFoundError: Si la clase no existe en el gimnasio
            InvalidInputError: Si end_time no es posterior a start_time
            AlreadyExistsError: Si la clase ya tiene una sesión a esa hora
        """
        class_obj = class_repository.get(db, id=session_data.class_id, gym_id=gym_id)
        if not class_obj:
            raise NotFoundError(f"Clase {session_data.class_id} no encontrada", class_id=session_data.class_id)

        gym_timezone = self._gym_timezone(db, gym_id)
        start_time = normalize_to_utc(session_data.start_time, gym_timezone)
        if session_data.end_time is not None:
            end_time = normalize_to_utc(session_data.end_time, gym_timezone)
        else:
            end_time = start_time + timedelta(minutes=class_obj.duration)

        if end_time <= start_time:
            raise InvalidInputError(
                "end_time debe ser posterior a start_time", start_time=start_time, end_time=end_time
            )

        def work(db: Session) -> ClassSession:
            existing = class_session_repository.get_existing_start_times(
                db, class_id=class_obj.id, start=start_time, end=start_time
            )
            if start_time in existing:
                raise AlreadyExistsError(
                    "La clase ya tiene una sesión a esa hora", class_id=class_obj.id, start_time=start_time
                )
            return class_session_repository.create(db, obj_in={
                "class_id": class_obj.id,
                "trainer_id": session_data.trainer_id,
                "start_time": start_time,
                "end_time": end_time,
                "room": session_data.room,
                "override_capacity": session_data.override_capacity,
                "notes": session_data.notes,
                "status": ClassSessionStatus.SCHEDULED,
                "current_participants": 0,
                "occupancy_version": 0,
                "created_by": created_by,
            }, gym_id=gym_id)

        session = run_in_transaction(db, work, name="create_session")
        logger.info(f"Sesión {session.id} creada para clase {class_obj.id} a las {start_time.isoformat()}")
        return session

    def update_capacity(
        self, db: Session, session_id: int, override_capacity: Optional[int], gym_id: int,
        now: Optional[datetime] = None
    ) -> ClassSession:
        """
        Cambia la capacidad propia de la sesión (None vuelve a la de la clase).

        Raises:
            NotFoundError: Si la sesión no existe
            InvalidStateError: Si la sesión no está programada o la capacidad
                queda por debajo de las reservas confirmadas
        """
        now = now or utc_now()
        self.get_session(db, session_id, gym_id)

        def work(db: Session) -> Tuple[ClassSession, bool]:
            locked = class_session_repository.lock_session(db, session_id=session_id)
            if locked.status != ClassSessionStatus.SCHEDULED:
                raise InvalidStateError(
                    "Solo se puede cambiar el aforo de sesiones programadas",
                    session_id=session_id, status=locked.status.value
                )
            old_capacity = locked.effective_capacity
            new_capacity = (
                override_capacity if override_capacity is not None else locked.class_definition.max_capacity
            )
            booked = booking_repository.count_confirmed(db, session_id=session_id)
            if new_capacity < booked:
                raise InvalidStateError(
                    "La capacidad no puede ser menor que las reservas confirmadas",
                    session_id=session_id, booked=booked, capacity=new_capacity
                )
            locked.override_capacity = override_capacity
            db.flush()
            return locked, new_capacity > old_capacity

        session, increased = run_in_transaction(db, work, name="update_session_capacity")
        logger.info(f"Aforo de la sesión {session_id} actualizado a {override_capacity}")

        if increased:
            self.waitlist.fill_from_waitlist(db, session_id, now=now)

        db.refresh(session)
        return session

    def cancel_session(
        self, db: Session, session_id: int, gym_id: int, reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Tuple[ClassSession, int]:
        """
        Cancelación administrativa: la sesión pasa a CANCELLED y, en la misma
        unidad, se cancelan todas sus reservas confirmadas y se vacía la lista
        de espera. No aplica plazos de cancelación.

        Returns:
            (sesión cancelada, número de reservas canceladas)
        """
        now = now or utc_now()
        self.get_session(db, session_id, gym_id)

        def work(db: Session) -> Tuple[ClassSession, int]:
            locked = class_session_repository.lock_session(db, session_id=session_id)
            if locked.status in (ClassSessionStatus.CANCELLED, ClassSessionStatus.COMPLETED):
                raise InvalidStateError(
                    f"La sesión ya está en estado {locked.status.value}",
                    session_id=session_id, status=locked.status.value
                )
            locked.status = ClassSessionStatus.CANCELLED
            locked.cancelled_at = now
            locked.cancellation_reason = reason
            cancelled = booking_repository.cancel_confirmed_for_session(
                db, session_id=session_id, cancelled_at=now, reason=reason
            )
            waitlist_repository.remove_all_for_session(db, session_id=session_id)
            class_session_repository.refresh_participant_count(db, session=locked)
            return locked, cancelled

        session, cancelled = run_in_transaction(db, work, name="cancel_session")
        logger.info(f"Sesión {session_id} cancelada: {cancelled} reservas canceladas")
        return session, cancelled

    def update_session_statuses(self, db: Session, now: Optional[datetime] = None) -> Tuple[int, int]:
        """
        Avanza el estado de las sesiones según la hora: SCHEDULED -> IN_PROGRESS
        al empezar y -> COMPLETED al terminar. Las canceladas no se tocan.

        Returns:
            (sesiones iniciadas, sesiones completadas)
        """
        now = now or utc_now()

        def work(db: Session) -> Tuple[int, int]:
            started = class_session_repository.get_sessions_to_start(db, now=now)
            for session in started:
                session.status = ClassSessionStatus.IN_PROGRESS
            completed = class_session_repository.get_sessions_to_complete(db, now=now)
            for session in completed:
                session.status = ClassSessionStatus.COMPLETED
            db.flush()
            return len(started), len(completed)

        started, completed = run_in_transaction(db, work, name="update_session_statuses")
        if started or completed:
            logger.info(f"Estados de sesión actualizados: {started} en curso, {completed} completadas")
        return started, completed


class_service = ClassService()
class_session_service = ClassSessionService()
