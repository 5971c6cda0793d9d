"""
Tests de administración de clases y sesiones: sesiones puntuales, cambios de
aforo, cancelación administrativa y avance de estados.
"""
import pytest
from datetime import datetime, timedelta, timezone

from app.core.exceptions import (
    AlreadyExistsError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from app.core.timezone_utils import ensure_utc
from app.models.gym import Gym
from app.models.schedule import Booking, BookingStatus, ClassSessionStatus, WaitlistEntry
from app.schemas.schedule import ClassSessionCreate, ClassUpdate
from app.services.booking import booking_service
from app.services.schedule import class_service, class_session_service
from app.services.waitlist import waitlist_service


class TestClassPolicy:

    def test_create_class_keeps_policy(self, db, gym, class_factory):
        class_obj = class_factory(gym, booking_opens_hours=48, cancellation_minutes=60, waitlist_max=4)

        loaded = class_service.get_class(db, class_id=class_obj.id, gym_id=gym.id)

        assert loaded.booking_opens_hours == 48
        assert loaded.booking_closes_minutes == 30
        assert loaded.cancellation_minutes == 60
        assert loaded.waitlist_max == 4

    def test_get_class_of_other_gym(self, db, gym, other_gym, class_factory):
        class_obj = class_factory(gym)

        with pytest.raises(NotFoundError):
            class_service.get_class(db, class_id=class_obj.id, gym_id=other_gym.id)

    def test_list_active_classes(self, db, gym, class_factory):
        class_factory(gym, name="Yoga")
        class_factory(gym, name="Boxeo", is_active=False)

        names = [c.name for c in class_service.get_classes(db, gym_id=gym.id, active_only=True)]

        assert names == ["Yoga"]

    def test_lowering_capacity_below_bookings_fails(
        self, db, gym, class_factory, session_factory, member_factory, now
    ):
        class_obj = class_factory(gym, max_capacity=3)
        session = session_factory(gym, class_obj)
        member_factory(gym, 1, 2)
        for member_id in (1, 2):
            booking_service.book_session(db, member_id=member_id, session_id=session.id, gym_id=gym.id, now=now)

        with pytest.raises(InvalidStateError):
            class_service.update_class(
                db, class_id=class_obj.id, class_data=ClassUpdate(max_capacity=1), gym_id=gym.id, now=now
            )
        assert class_service.get_class(db, class_id=class_obj.id, gym_id=gym.id).max_capacity == 3

    def test_raising_capacity_promotes_waitlist(
        self, db, gym, class_factory, session_factory, member_factory, now
    ):
        class_obj = class_factory(gym, max_capacity=1)
        session = session_factory(gym, class_obj)
        member_factory(gym, 1, 2)
        booking_service.book_session(db, member_id=1, session_id=session.id, gym_id=gym.id, now=now)
        waitlist_service.join_waitlist(db, member_id=2, session_id=session.id, gym_id=gym.id)

        updated = class_service.update_class(
            db, class_id=class_obj.id, class_data=ClassUpdate(max_capacity=2), gym_id=gym.id, now=now
        )

        assert updated.max_capacity == 2
        promoted = db.query(Booking).filter(Booking.member_id == 2).one()
        assert promoted.promoted_from_waitlist is True


class TestAdHocSessions:

    def test_end_time_defaults_to_class_duration(self, db, gym, class_factory, session_factory, now):
        session = session_factory(gym, class_factory(gym, duration=45), start_time=now + timedelta(days=1))

        assert ensure_utc(session.end_time) - ensure_utc(session.start_time) == timedelta(minutes=45)
        assert session.status == ClassSessionStatus.SCHEDULED

    def test_naive_times_are_gym_local(self, db, class_factory):
        gym = Gym(name="Nueva York", subdomain="nueva-york", timezone="America/New_York", is_active=True)
        db.add(gym)
        db.commit()
        class_obj = class_factory(gym)

        session = class_session_service.create_session(
            db,
            session_data=ClassSessionCreate(class_id=class_obj.id, trainer_id=1, start_time=datetime(2030, 1, 9, 7, 0)),
            gym_id=gym.id,
        )

        assert ensure_utc(session.start_time) == datetime(2030, 1, 9, 12, 0, tzinfo=timezone.utc)

    def test_end_before_start_is_rejected(self, db, gym, class_factory, session_factory, now):
        with pytest.raises(InvalidInputError):
            session_factory(
                gym, class_factory(gym), start_time=now + timedelta(days=1), end_time=now + timedelta(hours=23)
            )

    def test_duplicate_start_time_is_rejected(self, db, gym, class_factory, session_factory, now):
        class_obj = class_factory(gym)
        session_factory(gym, class_obj, start_time=now + timedelta(days=1))

        with pytest.raises(AlreadyExistsError):
            session_factory(gym, class_obj, start_time=now + timedelta(days=1))

    def test_unknown_class(self, db, gym, now):
        with pytest.raises(NotFoundError):
            class_session_service.create_session(
                db,
                session_data=ClassSessionCreate(class_id=99, trainer_id=1, start_time=now + timedelta(days=1)),
                gym_id=gym.id,
            )

    def test_list_sessions_by_range(self, db, gym, class_factory, session_factory, now):
        class_obj = class_factory(gym)
        first = session_factory(gym, class_obj, start_time=now + timedelta(days=1))
        session_factory(gym, class_obj, start_time=now + timedelta(days=5))

        sessions = class_session_service.get_sessions(
            db, gym_id=gym.id, start_date=now, end_date=now + timedelta(days=2)
        )

        assert [s.id for s in sessions] == [first.id]


class TestCapacityOverride:

    def test_override_below_bookings_fails(self, db, gym, class_factory, session_factory, member_factory, now):
        session = session_factory(gym, class_factory(gym, max_capacity=5))
        member_factory(gym, 1, 2)
        for member_id in (1, 2):
            booking_service.book_session(db, member_id=member_id, session_id=session.id, gym_id=gym.id, now=now)

        with pytest.raises(InvalidStateError):
            class_session_service.update_capacity(
                db, session_id=session.id, override_capacity=1, gym_id=gym.id, now=now
            )

    def test_override_can_be_reverted(self, db, gym, class_factory, session_factory, now):
        session = session_factory(gym, class_factory(gym, max_capacity=5), override_capacity=2)

        updated = class_session_service.update_capacity(
            db, session_id=session.id, override_capacity=None, gym_id=gym.id, now=now
        )

        assert updated.override_capacity is None
        assert updated.effective_capacity == 5


class TestCancelSession:

    def test_cancel_session_cancels_bookings_and_clears_waitlist(
        self, db, gym, class_factory, session_factory, member_factory, now
    ):
        session = session_factory(gym, class_factory(gym, max_capacity=1))
        member_factory(gym, 1, 2)
        booking_service.book_session(db, member_id=1, session_id=session.id, gym_id=gym.id, now=now)
        waitlist_service.join_waitlist(db, member_id=2, session_id=session.id, gym_id=gym.id)

        cancelled, count = class_session_service.cancel_session(
            db, session_id=session.id, gym_id=gym.id, reason="Instructor enfermo", now=now
        )

        assert count == 1
        assert cancelled.status == ClassSessionStatus.CANCELLED
        assert cancelled.cancellation_reason == "Instructor enfermo"
        assert cancelled.current_participants == 0
        assert db.query(Booking).filter(Booking.status == BookingStatus.CONFIRMED).count() == 0
        assert db.query(WaitlistEntry).count() == 0

    def test_cancel_session_twice_fails(self, db, gym, class_factory, session_factory, now):
        session = session_factory(gym, class_factory(gym))
        class_session_service.cancel_session(db, session_id=session.id, gym_id=gym.id, now=now)

        with pytest.raises(InvalidStateError):
            class_session_service.cancel_session(db, session_id=session.id, gym_id=gym.id, now=now)


class TestSessionStatuses:

    def test_sessions_progress_with_time(self, db, gym, class_factory, session_factory, now):
        class_obj = class_factory(gym, duration=60)
        running = session_factory(gym, class_obj, start_time=now - timedelta(minutes=30))
        finished = session_factory(gym, class_obj, start_time=now - timedelta(hours=3))
        upcoming = session_factory(gym, class_obj, start_time=now + timedelta(hours=3))
        cancelled = session_factory(gym, class_obj, start_time=now - timedelta(hours=5))
        class_session_service.cancel_session(db, session_id=cancelled.id, gym_id=gym.id, now=now)

        started, completed = class_session_service.update_session_statuses(db, now=now)

        assert (started, completed) == (1, 1)
        for session in (running, finished, upcoming, cancelled):
            db.refresh(session)
        assert running.status == ClassSessionStatus.IN_PROGRESS
        assert finished.status == ClassSessionStatus.COMPLETED
        assert upcoming.status == ClassSessionStatus.SCHEDULED
        assert cancelled.status == ClassSessionStatus.CANCELLED
