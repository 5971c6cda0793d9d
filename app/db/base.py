# Importar todos los modelos para que create_all los detecte
from app.db.base_class import Base  # noqa
from app.models.gym import Gym  # noqa
from app.models.user_gym import UserGym  # noqa
from app.models.schedule import (
    Class,
    RecurrenceRule,
    ClassSession,
    Booking,
    WaitlistEntry,
)  # noqa
