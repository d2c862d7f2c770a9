# tests/conftest.py

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shared.database.connection import Base
from shared.database.models import Event, EventRegistration, Profile
from shared.tickets.payload import TicketEvent, TicketHolder, TicketPayload
from shared.utils.rate_limiter import limiter
from tests.utils.data import EVENT_ID, OTHER_EVENT_ID, ORGANIZER_ID, REGISTRATION_ID, STUDENT_ID

# Los tests no dependen de Redis para el rate limiting
limiter.enabled = False


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'campuspass.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def seeded(session_maker):
    """Un evento de mañana con un registro, más un segundo evento sin registros"""
    start = datetime.now(timezone.utc) + timedelta(days=1)
    async with session_maker() as session:
        session.add_all([
            Profile(id=STUDENT_ID, email="asha@campus.edu", name="Asha Rao", role="student"),
            Profile(id=ORGANIZER_ID, email="org@campus.edu", name="Org", role="organizer"),
            Profile(id="org-2", email="org2@campus.edu", name="Org 2", role="organizer"),
        ])
        session.add_all([
            Event(
                id=EVENT_ID,
                organizer_id=ORGANIZER_ID,
                title="Hack Night",
                location="Lab 3",
                description="Noche de proyectos",
                start_time=start,
                end_time=start + timedelta(hours=4),
            ),
            Event(
                id=OTHER_EVENT_ID,
                organizer_id="org-2",
                title="Charla de bienvenida",
                location="Aula Magna",
                start_time=start,
            ),
        ])
        await session.flush()
        session.add(EventRegistration(
            id=REGISTRATION_ID,
            event_id=EVENT_ID,
            user_id=STUDENT_ID,
            participant_name="Asha Rao",
            roll_number="21CS042",
            department="Computer Science",
            year="3",
            class_name="CSE-A",
            profile_photo_url="https://cdn.campus.edu/photos/42.jpg",
        ))
        await session.commit()
    return {"start": start}


@pytest_asyncio.fixture
async def db(session_maker, seeded):
    async with session_maker() as session:
        yield session


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Cache en memoria en lugar de Redis"""
    store = {}

    async def fake_get(key):
        return store.get(key)

    async def fake_set(key, value, expire=3600):
        store[key] = value

    async def fake_delete(key):
        store.pop(key, None)

    for module in (
        "services.ticket_validation.services.checkin_service",
        "services.ticket_validation.services.photo_service",
    ):
        monkeypatch.setattr(f"{module}.cache_get", AsyncMock(side_effect=fake_get))
        monkeypatch.setattr(f"{module}.cache_set", AsyncMock(side_effect=fake_set))
    monkeypatch.setattr(
        "services.ticket_validation.services.checkin_service.cache_delete",
        AsyncMock(side_effect=fake_delete),
    )
    return store


@pytest.fixture
def asha_payload():
    return TicketPayload(
        holder=TicketHolder(name="Asha Rao", email="asha@campus.edu", department="Computer Science"),
        event=TicketEvent(
            id=EVENT_ID,
            title="Hack Night",
            location="Lab 3",
            start_time=datetime(2025, 3, 1, 18, 0),
        ),
        registration_id=REGISTRATION_ID,
    )
