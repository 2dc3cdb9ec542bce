"""Async SQLAlchemy engine, session factory and declarative base."""

from enum import Enum
from typing import AsyncIterator, Type

from fastapi import Request
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from hostdesk.core.config import Settings


class Base(DeclarativeBase):
    """Declarative base for all HostDesk models."""


def enum_column(enum_cls: Type[Enum]) -> SQLEnum:
    """Enum column type persisting the enum *values* (lowercase strings)."""
    return SQLEnum(
        enum_cls,
        name=enum_cls.__name__.lower(),
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database."""
    return create_async_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory. Objects stay usable after commit (handlers read snapshots)."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a session from the app's session factory."""
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        yield session
