from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from typing import TYPE_CHECKING

from app.db.base_class import Base

# Imports condicionales para evitar referencias circulares
if TYPE_CHECKING:
    from app.models.schedule import ClassSession, Class
    from app.models.user_gym import UserGym


class Gym(Base):
    """
    Modelo para representar un gimnasio (tenant) en el sistema.
    Cada gimnasio tiene sus propios miembros, clases y sesiones.
    """
    __tablename__ = "gyms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    subdomain = Column(String(100), unique=True, nullable=False, index=True)
    timezone = Column(String(50), nullable=False, default='UTC')  # Zona horaria del gimnasio (ej: 'America/Mexico_City')
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relaciones
    users = relationship("UserGym", back_populates="gym")
    classes = relationship("Class", back_populates="gym")
    class_sessions = relationship("ClassSession", back_populates="gym")
