from app.models.gym import Gym
from app.models.user_gym import UserGym, GymRoleType
from app.models.schedule import (
    Class, RecurrenceRule, ClassSession, Booking, WaitlistEntry,
    DayOfWeek, ClassDifficultyLevel, RecurrenceFrequency, ClassSessionStatus, BookingStatus
)
