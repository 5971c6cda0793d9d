import os

# El scheduler y Redis no deben arrancar durante los tests
os.environ["ENABLE_SCHEDULER"] = "False"
os.environ["REDIS_URL"] = ""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.session import get_db
from app.db.redis_client import get_redis_client
from app.main import app
from app.models.gym import Gym
from app.models.user_gym import UserGym, GymRoleType
from app.schemas.schedule import ClassCreate, ClassSessionCreate
from app.services.schedule import class_service, class_session_service

# Lunes 7 de enero de 2030, 12:00 UTC
NOW = datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_engine():
    """
    Base de datos SQLite en memoria, nueva para cada test.

    Los servicios hacen commit al final de cada unidad de trabajo, así que no
    se puede aislar el test con una transacción externa.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db):
    """
    Cliente de prueba con la sesión de test y sin Redis.
    """
    def override_get_db():
        try:
            yield db
        finally:
            pass

    async def override_get_redis_client():
        yield None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_client] = override_get_redis_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def gym(db):
    """Crea un gimnasio de prueba en UTC."""
    gym = Gym(name="Test Gym", subdomain="test-gym", timezone="UTC", is_active=True)
    db.add(gym)
    db.commit()
    db.refresh(gym)
    return gym


@pytest.fixture
def other_gym(db):
    gym = Gym(name="Other Gym", subdomain="other-gym", timezone="UTC", is_active=True)
    db.add(gym)
    db.commit()
    db.refresh(gym)
    return gym


@pytest.fixture
def member_factory(db):
    """Crea membresías activas (user_gyms) para los miembros indicados."""
    def _create(gym, *member_ids, **overrides):
        memberships = []
        for member_id in member_ids:
            data = {
                "user_id": member_id,
                "gym_id": gym.id,
                "role": GymRoleType.MEMBER,
                "is_active": True,
                "membership_type": "paid",
            }
            data.update(overrides)
            membership = UserGym(**data)
            db.add(membership)
            memberships.append(membership)
        db.commit()
        return memberships[0] if len(memberships) == 1 else memberships
    return _create


@pytest.fixture
def class_factory(db):
    def _create(gym, **overrides):
        data = {
            "name": "Spinning",
            "duration": 60,
            "max_capacity": 10,
            "booking_opens_hours": 168,
            "booking_closes_minutes": 30,
            "cancellation_minutes": 120,
            "waitlist_enabled": True,
            "waitlist_max": 10,
        }
        data.update(overrides)
        return class_service.create_class(db, class_data=ClassCreate(**data), gym_id=gym.id)
    return _create


@pytest.fixture
def session_factory(db):
    def _create(gym, class_obj, start_time=None, **overrides):
        data = {
            "class_id": class_obj.id,
            "trainer_id": 900,
            "start_time": start_time or (NOW + timedelta(days=2)),
        }
        data.update(overrides)
        return class_session_service.create_session(
            db, session_data=ClassSessionCreate(**data), gym_id=gym.id
        )
    return _create


@pytest.fixture
def now():
    """Instante de referencia fijo para los servicios (lunes 2030-01-07 12:00 UTC)."""
    return NOW
