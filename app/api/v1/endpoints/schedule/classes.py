from app.api.v1.endpoints.schedule.common import *
from app.schemas.schedule import (
    Class as ClassSchema,
    ClassCreate,
    ClassUpdate,
    RecurrenceRule as RecurrenceRuleSchema,
    RecurrenceRuleCreate,
    RecurrenceExpansionResult,
)

router = APIRouter()


@router.get("", response_model=List[ClassSchema])
async def get_classes(
    skip: int = 0,
    limit: int = 100,
    active_only: bool = False,
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
) -> Any:
    """
    Get Class Definitions

    Retrieves the class definitions (with their booking policy) for the current gym.

    Args:
        skip (int, optional): Number of records to skip for pagination. Defaults to 0.
        limit (int, optional): Maximum number of records to return. Defaults to 100.
        active_only (bool, optional): If true, only returns active classes. Defaults to False.

    Returns:
        List[ClassSchema]: A list of class definition objects.
    """
    return class_service.get_classes(
        db, gym_id=current_gym.id, active_only=active_only, skip=skip, limit=limit
    )


@router.post("", response_model=ClassSchema, status_code=status.HTTP_201_CREATED)
async def create_class(
    class_data: ClassCreate = Body(...),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
) -> Any:
    """
    Create a Class Definition

    Creates a class with its booking policy: booking window (hours before the
    session it opens, minutes before it closes), cancellation cutoff and
    waitlist settings.

    Returns:
        ClassSchema: The newly created class.
    """
    return class_service.create_class(db, class_data=class_data, gym_id=current_gym.id)


@router.get("/{class_id}", response_model=ClassSchema)
async def get_class(
    class_id: int = Path(..., description="ID of the class definition"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
) -> Any:
    """
    Get a Class Definition

    Raises:
        404: Class not found in this gym.
    """
    return class_service.get_class(db, class_id=class_id, gym_id=current_gym.id)


@router.patch("/{class_id}", response_model=ClassSchema)
async def update_class(
    class_id: int = Path(..., description="ID of the class definition"),
    class_data: ClassUpdate = Body(...),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Update a Class Definition

    Raising `max_capacity` fills upcoming sessions from their waitlists.
    Lowering it below the confirmed bookings of an upcoming session is rejected.

    Raises:
        404: Class not found in this gym.
        409: New capacity below the confirmed bookings of an upcoming session.
    """
    updated = class_service.update_class(
        db, class_id=class_id, class_data=class_data, gym_id=current_gym.id
    )
    await CacheService.delete_pattern(redis_client, f"schedule:gym:{current_gym.id}:session:*")
    return updated


@router.post(
    "/{class_id}/recurrence",
    response_model=RecurrenceExpansionResult,
    status_code=status.HTTP_201_CREATED
)
async def create_recurrence_rule(
    class_id: int = Path(..., description="ID of the class definition"),
    rule_in: RecurrenceRuleCreate = Body(...),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
) -> Any:
    """
    Create a Recurrence Rule

    Creates a weekly recurrence rule for the class and immediately expands it
    into concrete sessions up to the scheduling horizon (or the rule's end
    date, whichever comes first). Times are interpreted in the gym's timezone.

    Raises:
        404: Class not found in this gym.
        409: Class is inactive.
        422: Invalid rule (empty or out-of-range weekdays, interval < 1, end before start).
    """
    rule, sessions_created = recurrence_service.create_rule(
        db, class_id=class_id, rule_in=rule_in, gym_id=current_gym.id
    )
    return RecurrenceExpansionResult(
        rule=RecurrenceRuleSchema.model_validate(rule),
        sessions_created=sessions_created
    )


@router.get("/{class_id}/recurrence", response_model=List[RecurrenceRuleSchema])
async def get_recurrence_rules(
    class_id: int = Path(..., description="ID of the class definition"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
) -> Any:
    """List the recurrence rules of a class."""
    class_service.get_class(db, class_id=class_id, gym_id=current_gym.id)
    return recurrence_service.get_rules_for_class(db, class_id=class_id, gym_id=current_gym.id)


@router.post("/{class_id}/recurrence/{rule_id}/deactivate", response_model=RecurrenceRuleSchema)
async def deactivate_recurrence_rule(
    class_id: int = Path(..., description="ID of the class definition"),
    rule_id: int = Path(..., description="ID of the recurrence rule"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
) -> Any:
    """
    Deactivate a Recurrence Rule

    Stops the rule from generating further sessions. Sessions already
    generated are kept.
    """
    class_service.get_class(db, class_id=class_id, gym_id=current_gym.id)
    return recurrence_service.deactivate_rule(db, rule_id=rule_id, gym_id=current_gym.id)
