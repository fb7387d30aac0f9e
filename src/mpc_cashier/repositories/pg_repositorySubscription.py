# mpc_cashier/repositories/pg_repositorySubscription.py

import logging
from uuid import UUID
from typing import Callable, List, Optional
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from mpc_cashier.db import SubscriptionORM
from mpc_cashier.db.base import get_session
from mpc_cashier.db.uow import AsyncUnitOfWork
from mpc_cashier.exceptions import DatabaseError, NotFoundError

logger = logging.getLogger(__name__)


class SubscriptionRepository:
    """
    Локальные записи о подписках и их переходы состояний (cancel / cancel_now / resume).
    """
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(
        self,
        user_id: UUID,
        name: str,
        plan: str,
        contract_id: Optional[str] = None,
        trial_ends_at: Optional[datetime] = None,
    ) -> SubscriptionORM:
        subscription = SubscriptionORM(
            user_id=user_id,
            name=name,
            mpc_plan=plan,
            mpc_contract_id=contract_id,
            trial_ends_at=trial_ends_at,
            ends_at=None,
        )
        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                uow.session.add(subscription)
                await uow.session.flush()
                await uow.session.refresh(subscription)
        except SQLAlchemyError as e:
            logger.error(f"Failed to store subscription '{name}' for user {user_id}: {e}")
            raise DatabaseError("Subscription could not be stored due to a database error.") from e

        logger.info(f"Stored subscription {subscription.id} ('{name}', plan {plan}) for user {user_id}")
        return subscription

    async def get_by_name(self, user_id: UUID, name: str = "default") -> Optional[SubscriptionORM]:
        """Самая свежая подписка клиента с этим именем."""
        async for session in get_session(self._session_factory):
            stmt = (
                select(SubscriptionORM)
                .where(SubscriptionORM.user_id == user_id, SubscriptionORM.name == name)
                .order_by(SubscriptionORM.created_at.desc())
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    async def list_for_user(self, user_id: UUID) -> List[SubscriptionORM]:
        async for session in get_session(self._session_factory):
            stmt = (
                select(SubscriptionORM)
                .where(SubscriptionORM.user_id == user_id)
                .order_by(SubscriptionORM.created_at.desc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def _transition(
        self,
        subscription_id: UUID,
        apply: Callable[[SubscriptionORM], SubscriptionORM],
    ) -> SubscriptionORM:
        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                subscription = await uow.session.get(SubscriptionORM, subscription_id, with_for_update=True)
                if subscription is None:
                    raise NotFoundError(f"Subscription {subscription_id} not found.")
                # SubscriptionStateError откатывает транзакцию, запись не меняется
                apply(subscription)
                await uow.session.flush()
                await uow.session.refresh(subscription)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update subscription {subscription_id}: {e}")
            raise DatabaseError(f"Failed to update subscription {subscription_id}: {e}") from e
        return subscription

    async def cancel(self, subscription_id: UUID, now: Optional[datetime] = None) -> SubscriptionORM:
        subscription = await self._transition(subscription_id, lambda s: s.cancel(now))
        logger.info(f"Subscription cancelled, ends at {subscription.ends_at}", extra={"subscription_id": subscription_id})
        return subscription

    async def cancel_now(self, subscription_id: UUID, now: Optional[datetime] = None) -> SubscriptionORM:
        subscription = await self._transition(subscription_id, lambda s: s.cancel_now(now))
        logger.info(f"Subscription {subscription_id} cancelled immediately")
        return subscription

    async def resume(self, subscription_id: UUID, now: Optional[datetime] = None) -> SubscriptionORM:
        subscription = await self._transition(subscription_id, lambda s: s.resume(now))
        logger.info(f"Subscription {subscription_id} resumed")
        return subscription
