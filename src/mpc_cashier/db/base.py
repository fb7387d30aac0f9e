from __future__ import annotations

from typing import AsyncGenerator, Annotated
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import MetaData, func, DateTime, Uuid
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, mapped_column

from mpc_cashier.utils.dates import utcnow

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


UUIDPk = Annotated[UUID, mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)]

# default - в Python, server_default - для вставок мимо ORM
CreatedAt = Annotated[datetime, mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())]
UpdatedAt = Annotated[datetime, mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now())]

async def get_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Сессия на один вызов репозитория; многошаговые изменения идут через AsyncUnitOfWork."""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
