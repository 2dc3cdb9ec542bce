"""Shared fixtures: a file-backed SQLite database per test and an engine wired to fakes."""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

import hostdesk.models  # noqa: F401  (registers tables on Base.metadata)
from hostdesk.core.config import Settings
from hostdesk.core.database import Base, build_session_factory
from hostdesk.models.enums import BookingStatus
from hostdesk.models.property import Property
from hostdesk.schemas.booking import BookingCreate
from hostdesk.services.engine import BookingEngine
from hostdesk.services.mail_transport import MailResult, MailTransport

NOW = datetime(2025, 5, 1, 9, 0)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeTransport(MailTransport):
    """Records sent emails; can be told to fail or hang."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail_with: Optional[Exception] = None
        self.delay: float = 0

    async def send(
        self,
        recipient_email,
        recipient_name,
        subject,
        html_body,
        text_body=None,
        tags=None,
        timeout=10.0,
    ) -> MailResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(
            {
                "to": recipient_email,
                "name": recipient_name,
                "subject": subject,
                "html": html_body,
                "text": text_body,
                "tags": tags,
            }
        )
        return MailResult(message_id=f"msg-{len(self.sent)}")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'hostdesk.db'}",
        resend_api_key=None,
        from_email=None,
        cron_secret=None,
        mail_timeout_seconds=0.5,
    )


@pytest.fixture
async def db_engine(settings):
    engine = create_async_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def engine(settings, transport, clock) -> BookingEngine:
    return BookingEngine(settings, transport=transport, clock=clock)


@pytest.fixture
async def prop(session_factory) -> Property:
    async with session_factory() as session:
        prop = Property(name="Beach House", address="1 Ocean Drive")
        session.add(prop)
        await session.commit()
        return prop


@pytest.fixture
async def client(settings, session_factory, engine):
    from hostdesk.main import create_app

    app = create_app(settings)
    app.state.session_factory = session_factory
    app.state.engine = engine
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def create_booking(engine, session_factory, prop):
    """Create a booking through the booking service, returning the committed row."""

    async def _create(
        check_in: datetime,
        check_out: datetime,
        guest_name: str = "Alice",
        status: BookingStatus = BookingStatus.CONFIRMED,
        contact_email: Optional[str] = "alice@beachstays.com",
        **extra,
    ):
        data = BookingCreate(
            property_id=extra.pop("property_id", prop.id),
            guest_name=guest_name,
            contact_email=contact_email,
            check_in=check_in,
            check_out=check_out,
            status=status,
            **extra,
        )
        async with session_factory() as session:
            result = await engine.bookings(session).create(data)
            return result.booking

    return _create
