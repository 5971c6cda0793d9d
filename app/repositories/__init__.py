# Inicializador del paquete repositories
from app.repositories.base import BaseRepository
from app.repositories.schedule import (
    class_repository,
    recurrence_rule_repository,
    class_session_repository,
    booking_repository,
    waitlist_repository,
)

__all__ = [
    "BaseRepository",
    "class_repository",
    "recurrence_rule_repository",
    "class_session_repository",
    "booking_repository",
    "waitlist_repository",
]
