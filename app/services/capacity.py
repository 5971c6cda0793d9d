"""
Cálculo de aforo de sesiones.

`booked` siempre se deriva contando reservas CONFIRMED; el campo
`current_participants` de la sesión es solo un contador de visualización.
"""
from typing import Optional
import logging

from redis.asyncio import Redis
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import NotFoundError
from app.models.schedule import ClassSession
from app.repositories.schedule import (
    class_session_repository,
    booking_repository,
    waitlist_repository,
)
from app.schemas.schedule import SessionAvailability
from app.services.cache_service import CacheService, availability_cache_key

logger = logging.getLogger(__name__)


class CapacityService:

    def compute(self, db: Session, session: ClassSession) -> SessionAvailability:
        """Disponibilidad de una sesión ya cargada (y bloqueada si se va a decidir con ella)"""
        capacity = session.effective_capacity
        booked = booking_repository.count_confirmed(db, session_id=session.id)
        available = max(0, capacity - booked)
        return SessionAvailability(
            session_id=session.id,
            capacity=capacity,
            booked=booked,
            available=available,
            waitlist_count=waitlist_repository.count(db, session_id=session.id),
            is_full=available <= 0,
        )

    def get_availability(
        self, db: Session, session_id: int, gym_id: Optional[int] = None, lock: bool = False
    ) -> SessionAvailability:
        """
        Obtener el aforo de una sesión.

        Args:
            db: Sesión de base de datos
            session_id: ID de la sesión de clase
            gym_id: ID del gimnasio para filtrar (opcional)
            lock: Si es True, toma el bloqueo de la sesión antes de contar. Solo
                tiene sentido dentro de una unidad de trabajo que decide con el resultado.

        Raises:
            NotFoundError: Si la sesión no existe
        """
        if lock:
            session = class_session_repository.lock_session(db, session_id=session_id)
            if session is not None and gym_id is not None and session.gym_id != gym_id:
                session = None
        else:
            session = class_session_repository.get_with_class(db, session_id=session_id, gym_id=gym_id)

        if not session:
            raise NotFoundError(f"Sesión {session_id} no encontrada", session_id=session_id)

        return self.compute(db, session)

    async def get_availability_cached(
        self, db: Session, session_id: int, gym_id: int, redis_client: Optional[Redis] = None
    ) -> SessionAvailability:
        """Disponibilidad para visualización, con caché de lectura en Redis"""
        async def db_fetch():
            return self.get_availability(db, session_id, gym_id=gym_id)

        return await CacheService.get_or_set(
            redis_client=redis_client,
            cache_key=availability_cache_key(gym_id, session_id),
            db_fetch_func=db_fetch,
            model_class=SessionAvailability,
            expiry_seconds=get_settings().AVAILABILITY_CACHE_TTL_SECONDS,
        )


capacity_service = CapacityService()
