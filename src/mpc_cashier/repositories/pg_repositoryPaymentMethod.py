# mpc_cashier/repositories/pg_repositoryPaymentMethod.py

import logging
from uuid import UUID
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from mpc_cashier.db import PaymentMethodORM
from mpc_cashier.db.base import get_session
from mpc_cashier.db.uow import AsyncUnitOfWork
from mpc_cashier.exceptions import DatabaseError, NotFoundError

logger = logging.getLogger(__name__)


class PaymentMethodRepository:
    """
    Локальные записи о платёжных методах.
    Все изменения флага is_default идут через _make_default внутри одной транзакции.
    """
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_for_user(self, user_id: UUID) -> List[PaymentMethodORM]:
        async for session in get_session(self._session_factory):
            stmt = (
                select(PaymentMethodORM)
                .where(PaymentMethodORM.user_id == user_id)
                .order_by(PaymentMethodORM.created_at.desc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_for_user(self, user_id: UUID) -> int:
        async for session in get_session(self._session_factory):
            stmt = select(func.count()).select_from(PaymentMethodORM).where(PaymentMethodORM.user_id == user_id)
            return (await session.execute(stmt)).scalar_one()

    async def get_default(self, user_id: UUID) -> Optional[PaymentMethodORM]:
        async for session in get_session(self._session_factory):
            stmt = select(PaymentMethodORM).where(
                PaymentMethodORM.user_id == user_id,
                PaymentMethodORM.is_default.is_(True),
            )
            return (await session.execute(stmt)).scalars().first()

    async def add(
        self,
        user_id: UUID,
        token: str,
        type: str = "card",
        last_four: Optional[str] = None,
        brand: Optional[str] = None,
        is_default: Optional[bool] = None,
    ) -> PaymentMethodORM:
        """
        Создаёт платёжный метод. is_default=None означает
        "по умолчанию, если это первый метод клиента".
        """
        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                await uow.advisory_lock_customer(user_id)
                if is_default is None:
                    count_stmt = select(func.count()).select_from(PaymentMethodORM).where(PaymentMethodORM.user_id == user_id)
                    is_default = (await uow.session.execute(count_stmt)).scalar_one() == 0

                payment_method = PaymentMethodORM(
                    user_id=user_id,
                    mpc_token=token,
                    type=type,
                    last_four=last_four,
                    brand=brand,
                    is_default=False,
                )
                uow.session.add(payment_method)
                await uow.session.flush()

                if is_default:
                    await self._make_default(uow.session, user_id, payment_method)

                await uow.session.refresh(payment_method)
        except SQLAlchemyError as e:
            logger.error(f"Transaction failed while adding payment method for user {user_id}: {e}")
            raise DatabaseError("Failed to add payment method due to a database error.") from e

        logger.info(f"Added {payment_method.type} payment method {payment_method.id} for user {user_id} (default={payment_method.is_default})")
        return payment_method

    async def make_default(self, user_id: UUID, payment_method_id: UUID) -> PaymentMethodORM:
        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                await uow.advisory_lock_customer(user_id)
                payment_method = await uow.session.get(PaymentMethodORM, payment_method_id)
                if payment_method is None or payment_method.user_id != user_id:
                    raise NotFoundError(f"Payment method {payment_method_id} not found for user {user_id}.")
                await self._make_default(uow.session, user_id, payment_method)
                await uow.session.refresh(payment_method)
        except SQLAlchemyError as e:
            logger.error(f"Transaction failed while switching default payment method for user {user_id}: {e}")
            raise DatabaseError("Failed to update default payment method due to a database error.") from e
        return payment_method

    async def _make_default(self, session: AsyncSession, user_id: UUID, payment_method: PaymentMethodORM) -> None:
        # Блокируем строки клиента, затем снимаем флаг со всех и ставим на одну - в той же транзакции
        await session.execute(
            select(PaymentMethodORM.id).where(PaymentMethodORM.user_id == user_id).with_for_update()
        )
        await session.execute(
            update(PaymentMethodORM)
            .where(PaymentMethodORM.user_id == user_id, PaymentMethodORM.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )
        payment_method.is_default = True
        await session.flush()

    async def delete_for_user(self, user_id: UUID, payment_method_id: UUID) -> bool:
        """Удаляет только локальную запись; токен в шлюзе остаётся."""
        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                payment_method = await uow.session.get(PaymentMethodORM, payment_method_id)
                if payment_method is None or payment_method.user_id != user_id:
                    return False
                await uow.session.delete(payment_method)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to delete payment method {payment_method_id}: {e}") from e
        logger.info("Deleted payment method", extra={"payment_method_id": payment_method_id, "customer_id": user_id})
        return True
