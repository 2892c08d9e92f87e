import json
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tovis.database import create_db_engine, get_db
from tovis.dependencies import get_clock, get_redis
from tovis.main import app
from tovis.models import Base, Bookings, Professionals, Services
from tovis.services.actor import Actor, Role

UTC = timezone.utc

# Monday
MONDAY = datetime(2026, 10, 19, tzinfo=UTC)

WEEKDAYS_9_TO_17 = json.dumps({
    day: [["09:00", "17:00"]] for day in ("mon", "tue", "wed", "thu", "fri")
})


def at(hour: int, minute: int = 0, days: int = 0) -> datetime:
    """Monday (+days) at HH:MM UTC."""
    return MONDAY + timedelta(days=days, hours=hour, minutes=minute)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", 5.0, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock(at(8))


@pytest.fixture
def professional(db):
    pro = Professionals(
        user_id=100,
        display_name="Ana",
        time_zone="UTC",
        working_hours=WEEKDAYS_9_TO_17,
    )
    db.add(pro)
    db.commit()
    return pro


@pytest.fixture
def other_professional(db):
    pro = Professionals(user_id=200, display_name="Ben", time_zone="UTC", working_hours=WEEKDAYS_9_TO_17)
    db.add(pro)
    db.commit()
    return pro


@pytest.fixture
def service(db, professional):
    svc = Services(professional_id=professional.id, name="Haircut", duration_min=30)
    db.add(svc)
    db.commit()
    return svc


@pytest.fixture
def pro_actor(professional):
    return Actor(user_id=professional.user_id, role=Role.PRO, professional_id=professional.id)


@pytest.fixture
def client_actor():
    return Actor(user_id=501, role=Role.CLIENT)


@pytest.fixture
def add_booking(db, professional, service):
    """Insert a booking row directly, bypassing the service layer."""

    def _add(scheduled_for, status="PENDING", client_id=501, duration=None, **fields):
        booking = Bookings(
            professional_id=professional.id,
            client_id=client_id,
            service_id=service.id,
            scheduled_for=scheduled_for,
            duration_minutes_snapshot=duration or service.duration_min,
            status=status,
            **fields,
        )
        db.add(booking)
        db.commit()
        return booking

    return _add


@pytest.fixture
def fake_redis():
    redis = fakeredis.FakeRedis()
    yield redis
    redis.flushall()


@pytest.fixture
def api_redis():
    """Redis handed to the routers; modules testing the cache override this."""
    return None


@pytest.fixture
def api(db, clock, api_redis):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_redis] = lambda: api_redis
    app.dependency_overrides[get_clock] = lambda: clock
    # Not used as a context manager: the lifespan (schema, background loop) stays off
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def pro_headers(professional):
    return {
        "X-User-ID": str(professional.user_id),
        "X-User-Role": "PRO",
        "X-Professional-ID": str(professional.id),
    }


@pytest.fixture
def client_headers():
    return {"X-User-ID": "501", "X-User-Role": "CLIENT"}


def iso(dt):
    return dt.isoformat().replace("+00:00", "Z")
