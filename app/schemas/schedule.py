from typing import Optional, List
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime, time, date

from app.models.schedule import (
    ClassDifficultyLevel,
    RecurrenceFrequency,
    ClassSessionStatus,
    BookingStatus,
)


# Class schemas
class ClassBaseInput(BaseModel):
    """Modelo base para entrada de datos de clase (sin gym_id)"""
    name: str
    description: Optional[str] = None
    duration: int = Field(..., gt=0)  # Duración en minutos
    max_capacity: int = Field(..., gt=0)
    difficulty_level: ClassDifficultyLevel = ClassDifficultyLevel.BEGINNER
    is_active: bool = True

    # Política de reservas
    booking_opens_hours: int = Field(168, ge=0, description="Horas antes del inicio en que se abre la reserva")
    booking_closes_minutes: int = Field(30, ge=0, description="Minutos antes del inicio en que se cierra la reserva")
    cancellation_minutes: int = Field(120, ge=0, description="Antelación mínima en minutos para cancelar")
    waitlist_enabled: bool = True
    waitlist_max: int = Field(10, ge=0)

    @field_validator('difficulty_level', mode='before')
    @classmethod
    def normalize_difficulty(cls, v):
        """Permite enviar el nivel en mayúsculas ('BEGINNER' -> 'beginner')"""
        if isinstance(v, str):
            return v.lower()
        return v


class ClassCreate(ClassBaseInput):
    """Modelo para crear clases (sin gym_id requerido)"""
    pass


class ClassUpdate(BaseModel):
    """Modelo para actualizar clases (campos opcionales)"""
    name: Optional[str] = None
    description: Optional[str] = None
    duration: Optional[int] = Field(None, gt=0)
    max_capacity: Optional[int] = Field(None, gt=0)
    difficulty_level: Optional[ClassDifficultyLevel] = None
    is_active: Optional[bool] = None
    booking_opens_hours: Optional[int] = Field(None, ge=0)
    booking_closes_minutes: Optional[int] = Field(None, ge=0)
    cancellation_minutes: Optional[int] = Field(None, ge=0)
    waitlist_enabled: Optional[bool] = None
    waitlist_max: Optional[int] = Field(None, ge=0)
    # No incluir gym_id en update para evitar cambios de gimnasio


class Class(ClassBaseInput):
    """Modelo completo con todos los campos para respuestas"""
    id: int
    gym_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[int] = None

    model_config = {"from_attributes": True}


# RecurrenceRule schemas
class RecurrenceRuleCreate(BaseModel):
    """
    Regla semanal. La validación de días e intervalo se hace en el servicio
    para devolver un error de regla inválida con contexto.
    """
    frequency: RecurrenceFrequency = RecurrenceFrequency.WEEKLY
    interval: int = 1
    days_of_week: List[int] = Field(..., description="Días de la semana, lunes=0 ... domingo=6")
    time_of_day: time = Field(..., description="Hora local del gimnasio (HH:MM)")
    start_date: date
    end_date: Optional[date] = None
    trainer_id: int
    room: Optional[str] = None

    @field_validator('time_of_day', mode='before')
    @classmethod
    def parse_time_string(cls, value):
        """Validar y convertir strings de tiempo en formato HH:MM a objetos time"""
        if isinstance(value, str) and value.count(':') == 1:
            try:
                hour, minute = map(int, value.split(':'))
                return time(hour=hour, minute=minute)
            except (ValueError, TypeError):
                raise ValueError('El formato de tiempo debe ser HH:MM (ejemplo: 09:30)')
        return value


class RecurrenceRule(BaseModel):
    id: int
    class_id: int
    gym_id: int
    frequency: RecurrenceFrequency
    interval: int
    days_of_week: List[int]
    time_of_day: time
    start_date: date
    end_date: Optional[date] = None
    trainer_id: int
    room: Optional[str] = None
    generated_until: Optional[date] = None
    is_active: bool

    model_config = {"from_attributes": True}

    @field_validator('days_of_week', mode='before')
    @classmethod
    def split_days(cls, v):
        # En base de datos se guarda como "0,2,4"
        if isinstance(v, str):
            return [int(d) for d in v.split(",") if d.strip() != ""]
        return v


class RecurrenceExpansionResult(BaseModel):
    rule: RecurrenceRule
    sessions_created: int


# ClassSession schemas
class ClassSessionCreate(BaseModel):
    class_id: int
    trainer_id: int
    start_time: datetime  # Sin zona horaria se interpreta como hora local del gimnasio
    end_time: Optional[datetime] = None
    room: Optional[str] = None
    override_capacity: Optional[int] = Field(None, ge=0, description="Capacidad específica para esta sesión, si es diferente a la de la clase")
    notes: Optional[str] = None


class ClassSession(BaseModel):
    id: int
    class_id: int
    gym_id: int
    recurrence_rule_id: Optional[int] = None
    trainer_id: int
    start_time: datetime
    end_time: datetime
    room: Optional[str] = None
    status: ClassSessionStatus
    current_participants: int
    override_capacity: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class SessionCapacityUpdate(BaseModel):
    override_capacity: Optional[int] = Field(
        ..., ge=0, description="Nueva capacidad de la sesión; null vuelve a la capacidad de la clase"
    )


class SessionCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class SessionAvailability(BaseModel):
    """Vista de aforo de una sesión; `booked` siempre se deriva de las reservas confirmadas"""
    session_id: int
    capacity: int
    booked: int
    available: int
    waitlist_count: int
    is_full: bool

    @model_validator(mode='after')
    def check_counts(self):
        if self.available != max(0, self.capacity - self.booked):
            raise ValueError('available debe ser max(0, capacity - booked)')
        return self


# Booking schemas
class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class Booking(BaseModel):
    id: int
    session_id: int
    member_id: int
    gym_id: int
    status: BookingStatus
    booked_at: datetime
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    attended_at: Optional[datetime] = None
    promoted_from_waitlist: bool = False

    model_config = {"from_attributes": True}


class BookingWithSession(Booking):
    session: ClassSession


# Waitlist schemas
class WaitlistEntry(BaseModel):
    id: int
    session_id: int
    member_id: int
    gym_id: int
    position: int
    joined_at: datetime

    model_config = {"from_attributes": True}
