from app.schemas.gym import GymBase, GymSchema
from app.schemas.schedule import (
    Class,
    ClassCreate,
    ClassUpdate,
    RecurrenceRule,
    RecurrenceRuleCreate,
    RecurrenceExpansionResult,
    ClassSession,
    ClassSessionCreate,
    SessionCapacityUpdate,
    SessionCancel,
    SessionAvailability,
    Booking,
    BookingCancel,
    BookingWithSession,
    WaitlistEntry,
)
