import os

os.environ.setdefault("BOOKING_DB", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["RABBIT_URL"] = ""
os.environ["REDIS_URL"] = ""

from datetime import date
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient

from shared.database import get_engine, get_session

from app import services
from app.db import Base, get_db
from app.main import app
from app.models import ServiceListing, User
from app.schemas import CreateBookingRequest
from app.security import Principal, create_access_token

BOOKING_DATE = date(2030, 1, 15)


def _snapshot(obj, *fields):
    return SimpleNamespace(**{f: getattr(obj, f) for f in fields})


@pytest.fixture
async def engine():
    engine = get_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def people(db):
    users = SimpleNamespace(
        customer=User(email="c@test.com", full_name="Rahim", role="customer"),
        other_customer=User(email="c2@test.com", full_name="Karim", role="customer"),
        mechanic=User(email="m@test.com", full_name="Selim", role="mechanic"),
        other_mechanic=User(email="m2@test.com", full_name="Jamal", role="mechanic"),
        admin=User(email="a@test.com", full_name="Admin", role="admin"),
    )
    db.add_all(list(vars(users).values()))
    await db.commit()
    # plain snapshots stay readable after a rollback expires the ORM rows
    return SimpleNamespace(**{k: _snapshot(u, "id", "email", "role") for k, u in vars(users).items()})


@pytest.fixture
async def service(db, people):
    listing = ServiceListing(
        mechanic_id=people.mechanic.id,
        title="Engine tune-up",
        category="Other",
        base_price=500,
        estimated_duration=90,
    )
    db.add(listing)
    await db.commit()
    return _snapshot(listing, "id", "mechanic_id", "base_price")


@pytest.fixture
async def other_service(db, people):
    listing = ServiceListing(
        mechanic_id=people.other_mechanic.id,
        title="AC repair",
        category="HVAC",
        base_price=800,
        estimated_duration=60,
    )
    db.add(listing)
    await db.commit()
    return _snapshot(listing, "id", "mechanic_id", "base_price")


def principal(user) -> Principal:
    return Principal(user_id=user.id, roles=[user.role])


def booking_request(service, scheduled_date=BOOKING_DATE, scheduled_time="10:30", **overrides) -> CreateBookingRequest:
    payload = {
        "service_id": service.id,
        "scheduled_date": scheduled_date,
        "scheduled_time": scheduled_time,
        "service_location": {"address": "House 12, Road 5, Dhanmondi, Dhaka"},
    }
    payload.update(overrides)
    return CreateBookingRequest(**payload)


@pytest.fixture
def book(db, people, service):
    async def _book(customer=None, listing=None, scheduled_date=BOOKING_DATE, **overrides):
        customer = customer or people.customer
        listing = listing or service
        return await services.create_booking(
            db, principal(customer), booking_request(listing, scheduled_date, **overrides)
        )

    return _book


def auth_header(user, roles=None) -> dict:
    token = create_access_token(user.id, roles or [user.role])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
