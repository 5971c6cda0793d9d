from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from sqlalchemy.schema import UniqueConstraint
import enum

from app.db.base_class import Base


class GymRoleType(str, enum.Enum):
    """
    Roles específicos para un usuario dentro de un gimnasio.
    """
    OWNER = "OWNER"         # Propietario del gimnasio
    ADMIN = "ADMIN"         # Administrador del gimnasio
    TRAINER = "TRAINER"     # Entrenador
    MEMBER = "MEMBER"       # Miembro regular


STAFF_ROLES = (GymRoleType.OWNER, GymRoleType.ADMIN, GymRoleType.TRAINER)


class UserGym(Base):
    """
    Relación entre miembros y gimnasios.
    Un usuario puede pertenecer a múltiples gimnasios con diferentes roles.
    Incluye la información de membresía que consulta el control de acceso a
    clases y los contadores de asistencia.
    """
    __tablename__ = "user_gyms"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)  # Identidad gestionada fuera de este servicio
    gym_id = Column(Integer, ForeignKey("gyms.id"), nullable=False)
    role = Column(Enum(GymRoleType), nullable=False, default=GymRoleType.MEMBER)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # --- Campos de Membresía ---
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    membership_expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    membership_type = Column(String(50), default="free", nullable=False)  # "free", "paid", "trial"
    class_credits = Column(Integer, default=0, nullable=False)  # Créditos consumibles (bonos de clases)

    # --- Tracking de asistencia ---
    last_attendance_at = Column(DateTime(timezone=True), nullable=True)
    total_attendances = Column(Integer, default=0, nullable=False)

    # Relaciones
    gym = relationship("Gym", back_populates="users")

    # Un usuario solo puede tener un rol por gimnasio
    __table_args__ = (
        UniqueConstraint('user_id', 'gym_id', name='uq_user_gym'),
    )
