"""
Tests del cálculo de aforo de sesiones.
"""
import asyncio
import json

import pytest
from pydantic import ValidationError

from app.core.exceptions import NotFoundError
from app.schemas.schedule import SessionAvailability
from app.services.booking import booking_service
from app.services.cache_service import availability_cache_key
from app.services.capacity import capacity_service
from app.services.waitlist import waitlist_service


class FakeRedis:
    """Cliente Redis mínimo en memoria para los tests de caché."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed


class TestAvailability:

    def test_empty_session_uses_class_capacity(self, db, gym, class_factory, session_factory):
        session = session_factory(gym, class_factory(gym, max_capacity=8))

        availability = capacity_service.get_availability(db, session.id, gym_id=gym.id)

        assert availability.capacity == 8
        assert availability.booked == 0
        assert availability.available == 8
        assert availability.waitlist_count == 0
        assert availability.is_full is False

    def test_override_capacity_takes_precedence(self, db, gym, class_factory, session_factory):
        session = session_factory(gym, class_factory(gym, max_capacity=8), override_capacity=3)

        availability = capacity_service.get_availability(db, session.id)

        assert availability.capacity == 3

    def test_zero_override_is_respected(self, db, gym, class_factory, session_factory):
        session = session_factory(gym, class_factory(gym, max_capacity=8), override_capacity=0)

        availability = capacity_service.get_availability(db, session.id)

        assert availability.capacity == 0
        assert availability.is_full is True

    def test_only_confirmed_bookings_count(self, db, gym, class_factory, session_factory, member_factory, now):
        session = session_factory(gym, class_factory(gym, max_capacity=2))
        member_factory(gym, 1, 2, 3)
        first = booking_service.book_session(db, member_id=1, session_id=session.id, gym_id=gym.id, now=now)
        booking_service.book_session(db, member_id=2, session_id=session.id, gym_id=gym.id, now=now)
        waitlist_service.join_waitlist(db, member_id=3, session_id=session.id, gym_id=gym.id)

        full = capacity_service.get_availability(db, session.id)
        assert (full.booked, full.available, full.is_full, full.waitlist_count) == (2, 0, True, 1)

        booking_service.mark_no_show(db, booking_id=first.id, gym_id=gym.id, now=now)
        freed = capacity_service.get_availability(db, session.id)
        assert (freed.booked, freed.available, freed.is_full) == (1, 1, False)

    def test_locked_read(self, db, gym, class_factory, session_factory):
        session = session_factory(gym, class_factory(gym, max_capacity=4))

        availability = capacity_service.get_availability(db, session.id, gym_id=gym.id, lock=True)
        db.commit()

        assert availability.available == 4

    def test_unknown_session(self, db, gym):
        with pytest.raises(NotFoundError):
            capacity_service.get_availability(db, 404, gym_id=gym.id)

    def test_session_of_other_gym(self, db, gym, other_gym, class_factory, session_factory):
        session = session_factory(gym, class_factory(gym))

        with pytest.raises(NotFoundError):
            capacity_service.get_availability(db, session.id, gym_id=other_gym.id)
        with pytest.raises(NotFoundError):
            capacity_service.get_availability(db, session.id, gym_id=other_gym.id, lock=True)
        db.rollback()

    def test_inconsistent_availability_is_rejected(self):
        with pytest.raises(ValidationError):
            SessionAvailability(session_id=1, capacity=5, booked=2, available=4, waitlist_count=0, is_full=False)


class TestCachedAvailability:

    def test_without_redis_reads_database(self, db, gym, class_factory, session_factory):
        session = session_factory(gym, class_factory(gym, max_capacity=5))

        availability = asyncio.run(capacity_service.get_availability_cached(db, session.id, gym_id=gym.id))

        assert availability.available == 5

    def test_result_is_cached_per_gym_and_session(self, db, gym, class_factory, session_factory):
        session = session_factory(gym, class_factory(gym, max_capacity=5))
        redis = FakeRedis()

        asyncio.run(capacity_service.get_availability_cached(db, session.id, gym_id=gym.id, redis_client=redis))

        key = availability_cache_key(gym.id, session.id)
        assert key == f"schedule:gym:{gym.id}:session:{session.id}:availability"
        assert json.loads(redis.store[key])["capacity"] == 5

    def test_cache_hit_skips_database(self, db, gym, class_factory, session_factory):
        session = session_factory(gym, class_factory(gym, max_capacity=5))
        redis = FakeRedis()
        cached = SessionAvailability(
            session_id=session.id, capacity=5, booked=5, available=0, waitlist_count=2, is_full=True
        )
        redis.store[availability_cache_key(gym.id, session.id)] = cached.model_dump_json()

        availability = asyncio.run(
            capacity_service.get_availability_cached(db, session.id, gym_id=gym.id, redis_client=redis)
        )

        assert availability.waitlist_count == 2

    def test_corrupt_cache_entry_is_replaced(self, db, gym, class_factory, session_factory):
        session = session_factory(gym, class_factory(gym, max_capacity=5))
        redis = FakeRedis()
        key = availability_cache_key(gym.id, session.id)
        redis.store[key] = "{no es json"

        availability = asyncio.run(
            capacity_service.get_availability_cached(db, session.id, gym_id=gym.id, redis_client=redis)
        )

        assert availability.available == 5
        assert SessionAvailability.model_validate_json(redis.store[key]) == availability
