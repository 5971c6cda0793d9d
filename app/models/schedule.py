from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Time, DateTime, Text, Enum, CheckConstraint, Date, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from typing import List
import enum
import sqlalchemy as sa

from app.db.base_class import Base


class DayOfWeek(int, enum.Enum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class ClassDifficultyLevel(str, enum.Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class RecurrenceFrequency(str, enum.Enum):
    WEEKLY = "weekly"


class ClassSessionStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    ATTENDED = "attended"
    NO_SHOW = "no_show"


class Class(Base):
    """Definición de clases que se ofrecen, con su política de reservas"""
    __tablename__ = "class"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, nullable=False)  # Duración en minutos
    max_capacity = Column(Integer, nullable=False)
    difficulty_level = Column(Enum(ClassDifficultyLevel), nullable=False, default=ClassDifficultyLevel.BEGINNER)
    is_active = Column(Boolean, default=True)
    gym_id = Column(Integer, ForeignKey("gyms.id"), nullable=False, index=True)

    # Política de reservas
    booking_opens_hours = Column(Integer, nullable=False, default=168)  # Horas antes del inicio en que abre la reserva
    booking_closes_minutes = Column(Integer, nullable=False, default=30)  # Minutos antes del inicio en que cierra
    cancellation_minutes = Column(Integer, nullable=False, default=120)  # Antelación mínima para cancelar
    waitlist_enabled = Column(Boolean, nullable=False, default=True)
    waitlist_max = Column(Integer, nullable=False, default=10)

    # Relaciones
    sessions = relationship("ClassSession", back_populates="class_definition")
    recurrence_rules = relationship("RecurrenceRule", back_populates="class_definition")
    gym = relationship("Gym", back_populates="classes")

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_by = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint('max_capacity >= 0', name='check_class_capacity_non_negative'),
        CheckConstraint('waitlist_max >= 0', name='check_class_waitlist_max_non_negative'),
    )


class RecurrenceRule(Base):
    """
    Regla de recurrencia de una clase.

    Es inmutable una vez creada: la expansión la vuelve a leer para generar
    nuevas sesiones a medida que avanza el horizonte. Para cambiar el patrón se
    desactiva la regla y se crea otra.
    """
    __tablename__ = "class_recurrence_rule"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("class.id"), nullable=False, index=True)
    gym_id = Column(Integer, ForeignKey("gyms.id"), nullable=False, index=True)
    frequency = Column(Enum(RecurrenceFrequency), nullable=False, default=RecurrenceFrequency.WEEKLY)
    interval = Column(Integer, nullable=False, default=1)  # Cada cuántas semanas
    days_of_week = Column(String(20), nullable=False)  # Lista separada por comas, lunes=0 (ej: "0,2,4")
    time_of_day = Column(Time, nullable=False)  # Hora local del gimnasio
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    trainer_id = Column(Integer, nullable=False)
    room = Column(String, nullable=True)
    generated_until = Column(Date, nullable=True)  # Último día del horizonte ya expandido
    is_active = Column(Boolean, nullable=False, default=True)

    # Relaciones
    class_definition = relationship("Class", back_populates="recurrence_rules")
    sessions = relationship("ClassSession", back_populates="recurrence_rule")

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    created_by = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint('"interval" >= 1', name='check_recurrence_interval_positive'),
    )

    @property
    def weekdays(self) -> List[int]:
        """Días de la semana de la regla como enteros (lunes=0)."""
        if not self.days_of_week:
            return []
        return sorted({int(d) for d in self.days_of_week.split(",") if d.strip() != ""})


class ClassSession(Base):
    """Sesiones específicas de clases (instancias concretas en tiempo)"""
    __tablename__ = "class_session"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("class.id"), nullable=False)
    recurrence_rule_id = Column(Integer, ForeignKey("class_recurrence_rule.id"), nullable=True, index=True)
    trainer_id = Column(Integer, nullable=False)
    gym_id = Column(Integer, ForeignKey("gyms.id"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)  # Almacena UTC
    end_time = Column(DateTime(timezone=True), nullable=False)  # Almacena UTC
    room = Column(String, nullable=True)  # Sala o ubicación
    status = Column(Enum(ClassSessionStatus), nullable=False, default=ClassSessionStatus.SCHEDULED)
    current_participants = Column(Integer, nullable=False, default=0)  # Contador para mostrar; el aforo se calcula contando reservas
    override_capacity = Column(Integer, nullable=True)  # Capacidad específica para esta sesión, si es diferente a la de la clase
    occupancy_version = Column(Integer, nullable=False, default=0)  # Se incrementa al tomar el bloqueo de la sesión
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    # Relaciones
    class_definition = relationship("Class", back_populates="sessions")
    recurrence_rule = relationship("RecurrenceRule", back_populates="sessions")
    bookings = relationship("Booking", back_populates="session")
    waitlist_entries = relationship(
        "WaitlistEntry", back_populates="session", order_by="WaitlistEntry.position"
    )
    gym = relationship("Gym", back_populates="class_sessions")

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_by = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint('end_time > start_time', name='check_session_end_after_start'),
        sa.UniqueConstraint('class_id', 'start_time', name='uq_class_session_class_start'),
    )

    @property
    def effective_capacity(self) -> int:
        """Capacidad vigente: la de la sesión si está sobrescrita, si no la de la clase."""
        if self.override_capacity is not None:
            return self.override_capacity
        return self.class_definition.max_capacity


class Booking(Base):
    """Reserva de un miembro en una sesión de clase"""
    __tablename__ = "class_booking"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("class_session.id"), nullable=False, index=True)
    member_id = Column(Integer, nullable=False, index=True)
    gym_id = Column(Integer, ForeignKey("gyms.id"), nullable=False, index=True)
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.CONFIRMED)
    booked_at = Column(DateTime(timezone=True), nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String, nullable=True)
    attended_at = Column(DateTime(timezone=True), nullable=True)
    promoted_from_waitlist = Column(Boolean, nullable=False, default=False)

    # Relaciones
    session = relationship("ClassSession", back_populates="bookings")

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Una sola reserva no cancelada por miembro y sesión; las canceladas se conservan
    __table_args__ = (
        Index(
            'uq_class_booking_member_session_active',
            'member_id', 'session_id',
            unique=True,
            postgresql_where=sa.text("status <> 'CANCELLED'"),
            sqlite_where=sa.text("status <> 'CANCELLED'"),
        ),
    )


class WaitlistEntry(Base):
    """Posición de un miembro en la lista de espera de una sesión"""
    __tablename__ = "class_waitlist_entry"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("class_session.id"), nullable=False, index=True)
    member_id = Column(Integer, nullable=False, index=True)
    gym_id = Column(Integer, ForeignKey("gyms.id"), nullable=False)
    position = Column(Integer, nullable=False)  # 1-based, densa por sesión
    joined_at = Column(DateTime(timezone=True), nullable=False)

    # Relaciones
    session = relationship("ClassSession", back_populates="waitlist_entries")

    __table_args__ = (
        sa.UniqueConstraint('member_id', 'session_id', name='uq_waitlist_member_session'),
        CheckConstraint('position >= 1', name='check_waitlist_position_positive'),
    )
