"""
Utilidades para el manejo de zonas horarias en el motor de horarios.

Convención: todo lo que se persiste está en UTC. Las horas "de pared" que
define el gimnasio (hora de una regla recurrente, horas naive enviadas por el
cliente) se interpretan en la zona horaria del gimnasio.
"""
from datetime import date, datetime, time, timezone
from typing import Optional
import pytz


def utc_now() -> datetime:
    """Hora actual como datetime aware en UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Devuelve `dt` como datetime aware en UTC.

    Los valores naive se asumen ya en UTC (SQLite devuelve las columnas
    DateTime(timezone=True) sin tzinfo).
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def convert_naive_to_gym_timezone(naive_dt: datetime, gym_timezone: str) -> datetime:
    """
    Interpreta un datetime naive como hora local del gimnasio.

    Args:
        naive_dt: Datetime naive que representa la hora local del gimnasio
        gym_timezone: Zona horaria del gimnasio (ej: 'America/Mexico_City')

    Returns:
        Datetime aware en la zona horaria del gimnasio
    """
    if naive_dt.tzinfo is not None:
        raise ValueError("El datetime debe ser naive (sin timezone)")

    tz = pytz.timezone(gym_timezone)
    return tz.localize(naive_dt)


def convert_gym_time_to_utc(naive_dt: datetime, gym_timezone: str) -> datetime:
    """Convierte un datetime naive (hora local del gimnasio) a UTC."""
    gym_aware = convert_naive_to_gym_timezone(naive_dt, gym_timezone)
    return gym_aware.astimezone(timezone.utc)


def normalize_to_utc(dt: Optional[datetime], gym_timezone: str) -> Optional[datetime]:
    """
    Normaliza un datetime a UTC manejando entradas naive o aware.

    - Si `dt` es naive, se interpreta en la timezone del gimnasio y se convierte a UTC.
    - Si `dt` es aware, se convierte directamente a UTC preservando el instante exacto.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return convert_gym_time_to_utc(dt, gym_timezone)
    return dt.astimezone(timezone.utc)


def local_date_time_to_utc(day: date, wall_time: time, gym_timezone: str) -> datetime:
    """
    Combina una fecha y una hora de pared del gimnasio y devuelve el instante en UTC.

    pytz resuelve los cambios de horario (DST) de la zona del gimnasio.
    """
    return convert_gym_time_to_utc(datetime.combine(day, wall_time), gym_timezone)


def convert_utc_to_local(utc_dt: datetime, gym_timezone: str) -> datetime:
    """
    Convierte un datetime UTC a hora local del gimnasio.

    Args:
        utc_dt: Datetime en UTC (naive se asume UTC)
        gym_timezone: Zona horaria del gimnasio

    Returns:
        Datetime aware en la zona horaria del gimnasio
    """
    tz = pytz.timezone(gym_timezone)
    return ensure_utc(utc_dt).astimezone(tz)


def today_in_gym_timezone(gym_timezone: str, now: Optional[datetime] = None) -> date:
    """Fecha de calendario actual en la zona del gimnasio."""
    return convert_utc_to_local(now or utc_now(), gym_timezone).date()
