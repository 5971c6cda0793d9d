"""
Errores de dominio del motor de horarios.

Los servicios lanzan estas excepciones; la capa HTTP las traduce a respuestas
JSON con un único exception handler (ver app/main.py). Cada error lleva un
`code` estable y un diccionario `context` con los identificadores y plazos
necesarios para que el cliente muestre un mensaje accionable.
"""
from typing import Any, Dict

from fastapi import status


class SchedulingError(Exception):
    """Base de todos los errores tipados del motor de horarios."""
    code = "scheduling_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "code": self.code,
            "context": {k: _serialize(v) for k, v in self.context.items()},
        }


def _serialize(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


class NotFoundError(SchedulingError):
    """Raised when a resource is not found."""
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStateError(SchedulingError):
    """La operación no es válida para el estado actual de la entidad."""
    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT


class InvalidInputError(SchedulingError):
    code = "invalid_input"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidRuleError(InvalidInputError):
    """Regla de recurrencia mal formada."""
    code = "invalid_rule"


class BookingNotYetOpenError(SchedulingError):
    code = "booking_not_yet_open"


class BookingClosedError(SchedulingError):
    code = "booking_closed"


class CancellationDeadlinePassedError(SchedulingError):
    code = "cancellation_deadline_passed"


class AlreadyExistsError(SchedulingError):
    """Raised when trying to create a duplicate booking or waitlist entry."""
    code = "already_exists"
    status_code = status.HTTP_409_CONFLICT


class EntitlementRequiredError(SchedulingError):
    code = "entitlement_required"
    status_code = status.HTTP_403_FORBIDDEN


class MemberInactiveError(EntitlementRequiredError):
    code = "member_inactive"


class SessionFullError(SchedulingError):
    code = "session_full"
    status_code = status.HTTP_409_CONFLICT


class WaitlistFullError(SchedulingError):
    code = "waitlist_full"
    status_code = status.HTTP_409_CONFLICT


class FeatureDisabledError(SchedulingError):
    code = "feature_disabled"


class ForbiddenError(SchedulingError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(SchedulingError):
    """Contención persistente en la base de datos tras el reintento interno."""
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
