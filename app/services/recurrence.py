"""
Expansión de reglas de recurrencia en sesiones concretas.

Las reglas se expresan en hora de pared del gimnasio (p.ej. "lunes y miércoles
a las 07:00 en America/Mexico_City"); cada ocurrencia se convierte a UTC al
generarse, así que las sesiones mantienen la hora local aunque cambie el
horario de verano.

La expansión es idempotente: se recalculan todas las ocurrencias desde la
fecha de inicio de la regla (para conservar la fase de las semanas con
intervalo > 1) y solo se insertan las que no existen todavía para la clase.
"""
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import InvalidRuleError, InvalidStateError, NotFoundError
from app.core.timezone_utils import local_date_time_to_utc, today_in_gym_timezone, utc_now
from app.db.unit_of_work import run_in_transaction
from app.models.gym import Gym
from app.models.schedule import (
    Class,
    ClassSession,
    ClassSessionStatus,
    DayOfWeek,
    RecurrenceFrequency,
    RecurrenceRule,
)
from app.repositories.schedule import (
    class_repository,
    class_session_repository,
    recurrence_rule_repository,
)
from app.schemas.schedule import RecurrenceRuleCreate

logger = logging.getLogger(__name__)

# Al llegar a este día empieza una nueva semana para el salto de intervalo
WEEK_BOUNDARY = DayOfWeek.SUNDAY


def generate_occurrences(
    rule: RecurrenceRule,
    duration_minutes: int,
    gym_timezone: str,
    until: date,
    now: datetime,
) -> List[Tuple[datetime, datetime]]:
    """
    Calcula las ocurrencias (inicio, fin) en UTC de una regla hasta `until` inclusive.

    Solo devuelve ocurrencias que empiezan después de `now`. Con intervalo > 1,
    cada vez que se alcanza el límite de semana se saltan (intervalo - 1) semanas.
    """
    weekdays = set(rule.weekdays)
    duration = timedelta(minutes=duration_minutes)
    skip_days = (rule.interval - 1) * 7 if rule.frequency == RecurrenceFrequency.WEEKLY else 0
    last_day = min(until, rule.end_date) if rule.end_date else until

    occurrences = []
    current = rule.start_date
    while current <= last_day:
        if current.weekday() in weekdays:
            start_time = local_date_time_to_utc(current, rule.time_of_day, gym_timezone)
            if start_time > now:
                occurrences.append((start_time, start_time + duration))

        current = current + timedelta(days=1)
        if skip_days and current.weekday() == WEEK_BOUNDARY:
            current = current + timedelta(days=skip_days)

    return occurrences


class RecurrenceService:

    def validate_rule(self, rule_in: RecurrenceRuleCreate) -> None:
        """
        Valida la forma de la regla.

        Raises:
            InvalidRuleError: Días vacíos o fuera de rango, intervalo < 1 o fin antes del inicio
        """
        if not rule_in.days_of_week:
            raise InvalidRuleError("La regla debe incluir al menos un día de la semana", field="days_of_week")
        invalid_days = [d for d in rule_in.days_of_week if d < DayOfWeek.MONDAY or d > DayOfWeek.SUNDAY]
        if invalid_days:
            raise InvalidRuleError(
                "Los días de la semana deben estar entre 0 (lunes) y 6 (domingo)",
                field="days_of_week", invalid_values=invalid_days
            )
        if rule_in.interval < 1:
            raise InvalidRuleError("El intervalo debe ser al menos 1", field="interval", interval=rule_in.interval)
        if rule_in.end_date is not None and rule_in.end_date < rule_in.start_date:
            raise InvalidRuleError(
                "end_date no puede ser anterior a start_date",
                field="end_date", start_date=rule_in.start_date, end_date=rule_in.end_date
            )

    def _gym_timezone(self, db: Session, gym_id: int) -> str:
        tz = db.query(Gym.timezone).filter(Gym.id == gym_id).scalar()
        return tz or "UTC"

    def _horizon(self, gym_timezone: str, now: datetime, horizon: Optional[date]) -> date:
        if horizon is not None:
            return horizon
        days = get_settings().RECURRENCE_HORIZON_DAYS
        return today_in_gym_timezone(gym_timezone, now) + timedelta(days=days)

    def _expand_in_unit(
        self, db: Session, rule: RecurrenceRule, class_obj: Class, now: datetime, until: date
    ) -> List[ClassSession]:
        gym_timezone = self._gym_timezone(db, rule.gym_id)
        occurrences = generate_occurrences(rule, class_obj.duration, gym_timezone, until, now)

        created = []
        if occurrences:
            existing = class_session_repository.get_existing_start_times(
                db, class_id=rule.class_id, start=occurrences[0][0], end=occurrences[-1][0]
            )
            for start_time, end_time in occurrences:
                if start_time in existing:
                    continue
                session = ClassSession(
                    class_id=rule.class_id,
                    recurrence_rule_id=rule.id,
                    gym_id=rule.gym_id,
                    trainer_id=rule.trainer_id,
                    room=rule.room,
                    start_time=start_time,
                    end_time=end_time,
                    status=ClassSessionStatus.SCHEDULED,
                    current_participants=0,
                    occupancy_version=0,
                )
                db.add(session)
                created.append(session)
            db.flush()

        if rule.generated_until is None or rule.generated_until < until:
            rule.generated_until = until
        return created

    def create_rule(
        self,
        db: Session,
        class_id: int,
        rule_in: RecurrenceRuleCreate,
        gym_id: int,
        now: Optional[datetime] = None,
        horizon: Optional[date] = None,
        created_by: Optional[int] = None,
    ) -> Tuple[RecurrenceRule, int]:
        """
        Crea una regla de recurrencia y genera sus sesiones hasta el horizonte.

        Args:
            db: Sesión de base de datos
            class_id: ID de la clase
            rule_in: Datos de la regla
            gym_id: ID del gimnasio
            now: Instante de referencia (UTC); por defecto la hora actual
            horizon: Último día a expandir; por defecto hoy + RECURRENCE_HORIZON_DAYS
            created_by: Usuario que crea la regla (auditoría)

        Returns:
            (regla, número de sesiones creadas)
        """
        now = now or utc_now()
        self.validate_rule(rule_in)

        class_obj = class_repository.get(db, id=class_id, gym_id=gym_id)
        if not class_obj:
            raise NotFoundError(f"Clase {class_id} no encontrada", class_id=class_id)
        if not class_obj.is_active:
            raise InvalidStateError("No se pueden programar sesiones de una clase inactiva", class_id=class_id)

        def work(db: Session) -> Tuple[RecurrenceRule, int]:
            rule = RecurrenceRule(
                class_id=class_id,
                gym_id=gym_id,
                frequency=rule_in.frequency,
                interval=rule_in.interval,
                days_of_week=",".join(str(d) for d in sorted(set(rule_in.days_of_week))),
                time_of_day=rule_in.time_of_day,
                start_date=rule_in.start_date,
                end_date=rule_in.end_date,
                trainer_id=rule_in.trainer_id,
                room=rule_in.room,
                is_active=True,
                created_by=created_by,
            )
            db.add(rule)
            db.flush()
            until = self._horizon(self._gym_timezone(db, gym_id), now, horizon)
            created = self._expand_in_unit(db, rule, class_obj, now, until)
            return rule, len(created)

        rule, sessions_created = run_in_transaction(db, work, name="create_recurrence_rule")
        db.refresh(rule)
        logger.info(
            f"Regla de recurrencia {rule.id} creada para clase {class_id} (gym {gym_id}): "
            f"{sessions_created} sesiones generadas"
        )
        return rule, sessions_created

    def expand_rule(
        self,
        db: Session,
        rule: RecurrenceRule,
        now: Optional[datetime] = None,
        horizon: Optional[date] = None,
    ) -> List[ClassSession]:
        """
        Genera las sesiones que falten de una regla hasta el horizonte.
        Las ya existentes (misma clase y hora de inicio) no se duplican.
        """
        now = now or utc_now()
        rule_id = rule.id

        def work(db: Session) -> List[ClassSession]:
            current_rule = recurrence_rule_repository.get(db, id=rule_id)
            if not current_rule or not current_rule.is_active:
                return []
            class_obj = class_repository.get(db, id=current_rule.class_id)
            if not class_obj or not class_obj.is_active:
                logger.debug(f"Regla {rule_id}: clase inactiva, no se expande")
                return []
            until = self._horizon(self._gym_timezone(db, current_rule.gym_id), now, horizon)
            return self._expand_in_unit(db, current_rule, class_obj, now, until)

        created = run_in_transaction(db, work, name="expand_recurrence_rule")
        if created:
            logger.info(f"Regla {rule_id}: {len(created)} sesiones nuevas generadas")
        return created

    def extend_all_rules(self, db: Session, now: Optional[datetime] = None) -> int:
        """
        Avanza el horizonte de todas las reglas activas. Punto de entrada de la
        tarea periódica. Devuelve el total de sesiones creadas.
        """
        now = now or utc_now()
        rules = recurrence_rule_repository.get_expandable(db, today=now.date())
        total = 0
        for rule in rules:
            total += len(self.expand_rule(db, rule, now=now))
        logger.info(f"Extensión de horizonte completada: {len(rules)} reglas, {total} sesiones nuevas")
        return total

    def get_rules_for_class(self, db: Session, class_id: int, gym_id: int) -> List[RecurrenceRule]:
        return recurrence_rule_repository.get_by_class(db, class_id=class_id, gym_id=gym_id)

    def deactivate_rule(self, db: Session, rule_id: int, gym_id: int) -> RecurrenceRule:
        """Desactiva una regla; las sesiones ya generadas se conservan"""
        def work(db: Session) -> RecurrenceRule:
            rule = recurrence_rule_repository.get(db, id=rule_id, gym_id=gym_id)
            if not rule:
                raise NotFoundError(f"Regla de recurrencia {rule_id} no encontrada", rule_id=rule_id)
            rule.is_active = False
            return rule

        rule = run_in_transaction(db, work, name="deactivate_recurrence_rule")
        logger.info(f"Regla de recurrencia {rule_id} desactivada")
        return rule


recurrence_service = RecurrenceService()
