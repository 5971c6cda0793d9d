"""
Colaboradores externos del motor de reservas.

El motor solo hace dos preguntas al resto de la plataforma:

- ¿el miembro tiene un derecho de acceso vigente (suscripción, créditos o
  rol de staff)?  -> EntitlementGate
- registrar una asistencia completada  -> AttendanceRecorder

Las implementaciones por defecto leen y escriben la tabla `user_gyms`.
Cualquier otra implementación (p.ej. un cliente del servicio de facturación)
puede inyectarse en BookingService / WaitlistService.
"""
from datetime import datetime
from typing import Optional, Protocol
import logging

from sqlalchemy.orm import Session

from app.core.timezone_utils import ensure_utc, utc_now
from app.models.user_gym import UserGym, STAFF_ROLES

logger = logging.getLogger(__name__)


class EntitlementGate(Protocol):
    def is_member_active(self, db: Session, member_id: int, gym_id: int) -> bool:
        ...

    def has_entitlement(self, db: Session, member_id: int, gym_id: int) -> bool:
        ...


class AttendanceRecorder(Protocol):
    def record_attendance(
        self, db: Session, member_id: int, gym_id: int, session_id: int, attended_at: datetime
    ) -> None:
        ...


class MembershipEntitlementGate:
    """
    Control de acceso basado en la membresía del miembro en el gimnasio.

    Un miembro tiene derecho a reservar si su membresía en el gimnasio está
    activa y además:
    - no ha expirado, o
    - tiene créditos de clase disponibles, o
    - tiene un rol de staff (OWNER, ADMIN, TRAINER).

    Una membresía desactivada no tiene derecho aunque conserve créditos o rol.
    """

    def _get_membership(self, db: Session, member_id: int, gym_id: int) -> Optional[UserGym]:
        return db.query(UserGym).filter(
            UserGym.user_id == member_id,
            UserGym.gym_id == gym_id
        ).first()

    def is_member_active(self, db: Session, member_id: int, gym_id: int) -> bool:
        membership = self._get_membership(db, member_id, gym_id)
        if not membership:
            logger.debug(f"Miembro {member_id} sin membresía en gym {gym_id}")
            return False
        return bool(membership.is_active)

    def has_entitlement(self, db: Session, member_id: int, gym_id: int, now: Optional[datetime] = None) -> bool:
        membership = self._get_membership(db, member_id, gym_id)
        if not membership or not membership.is_active:
            return False

        if membership.role in STAFF_ROLES:
            return True

        if (membership.class_credits or 0) > 0:
            return True

        expires_at = ensure_utc(membership.membership_expires_at)
        if expires_at is None:
            return True
        return expires_at > (now or utc_now())


class MembershipAttendanceRecorder:
    """Registra la asistencia en los contadores de la membresía."""

    def record_attendance(
        self, db: Session, member_id: int, gym_id: int, session_id: int, attended_at: datetime
    ) -> None:
        membership = db.query(UserGym).filter(
            UserGym.user_id == member_id,
            UserGym.gym_id == gym_id
        ).first()
        if not membership:
            logger.warning(
                f"Asistencia a la sesión {session_id} sin membresía para miembro {member_id} en gym {gym_id}"
            )
            return
        membership.last_attendance_at = attended_at
        membership.total_attendances = (membership.total_attendances or 0) + 1
        db.flush()


membership_entitlement_gate = MembershipEntitlementGate()
membership_attendance_recorder = MembershipAttendanceRecorder()
