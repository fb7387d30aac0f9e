# mpc_cashier/repositories/pg_repositoryCustomer.py

import logging
from typing import Any, Optional, Type

from sqlalchemy import select, update, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from mpc_cashier.db.base import get_session
from mpc_cashier.exceptions import DatabaseError, NotFoundError

logger = logging.getLogger(__name__)


class CustomerRepository:
    """
    Доступ к сущности-владельцу (модель из настройки `model`).
    Сам репозиторий знает о ней только то, что у неё есть `id` и `mpc_customer_id`.
    """
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], model: Type[Any]):
        self._session_factory = session_factory
        self.model = model

    async def check_connection(self) -> None:
        try:
            async for session in get_session(self._session_factory):
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise DatabaseError(f"Database is unreachable: {e}") from e

    async def add(self, entity: Any) -> Any:
        async for session in get_session(self._session_factory):
            try:
                session.add(entity)
                await session.commit()
                await session.refresh(entity)
                return entity
            except IntegrityError as e:
                await session.rollback()
                raise DatabaseError(f"Customer violates a constraint: {e.orig}") from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to create customer: {e}") from e

    async def get(self, customer_id: Any) -> Optional[Any]:
        async for session in get_session(self._session_factory):
            result = await session.execute(select(self.model).where(self.model.id == customer_id))
            return result.scalar_one_or_none()

    async def get_by_mpc_customer_id(self, mpc_customer_id: str) -> Optional[Any]:
        async for session in get_session(self._session_factory):
            result = await session.execute(
                select(self.model).where(self.model.mpc_customer_id == str(mpc_customer_id))
            )
            return result.scalars().first()

    async def save_customer_id(self, entity: Any) -> None:
        """Сохраняет ID клиента шлюза, уже записанный в сущность через set_mpc_customer_id()."""
        async for session in get_session(self._session_factory):
            try:
                stmt = (
                    update(self.model)
                    .where(self.model.id == entity.id)
                    .values(mpc_customer_id=entity.get_mpc_customer_id())
                )
                result = await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Failed to store gateway customer id for {entity.id}: {e}")
                raise DatabaseError(f"Failed to store gateway customer id for {entity.id}: {e}") from e
            if result.rowcount == 0:
                raise NotFoundError(f"Customer {entity.id} not found.")
