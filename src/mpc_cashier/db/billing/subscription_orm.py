# mpc_cashier/db/billing/subscription_orm.py
from __future__ import annotations

from datetime import datetime
from uuid import UUID
from typing import Optional
from sqlalchemy import String, ForeignKey, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from ..base import Base, CreatedAt, UpdatedAt, UUIDPk
from mpc_cashier.exceptions import SubscriptionStateError
from mpc_cashier.utils.dates import utcnow, as_aware, add_months


class SubscriptionORM(Base):
    __tablename__ = "subscriptions"

    id: Mapped[UUIDPk]
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Метка подписки в рамках клиента; у одного клиента может быть несколько подписок с разными именами.
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="default")
    mpc_plan: Mapped[str] = mapped_column(String(255), nullable=False)
    # Пусто, пока шлюз не вернул ContractId
    mpc_contract_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # NULL - подписка не отменена. Будущая дата - отменена, но действует (grace period).
    ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]

    __table_args__ = (
        Index("ix_subscriptions_user_id_name", "user_id", "name"),
    )

    # ――― derived state ――― #

    def active(self, now: Optional[datetime] = None) -> bool:
        return self.ends_at is None or self.on_grace_period(now)

    def on_trial(self, now: Optional[datetime] = None) -> bool:
        return self.trial_ends_at is not None and as_aware(self.trial_ends_at) > (now or utcnow())

    def on_grace_period(self, now: Optional[datetime] = None) -> bool:
        return self.ends_at is not None and as_aware(self.ends_at) > (now or utcnow())

    def cancelled(self) -> bool:
        return self.ends_at is not None

    def ended(self, now: Optional[datetime] = None) -> bool:
        return self.ends_at is not None and as_aware(self.ends_at) <= (now or utcnow())

    # ――― transitions (только в памяти, сохраняет SubscriptionRepository) ――― #

    def cancel(self, now: Optional[datetime] = None) -> "SubscriptionORM":
        """Отмена в конце текущего периода. Повторный вызов дату не сдвигает."""
        if self.ends_at is None:
            self.ends_at = add_months(now or utcnow(), 1)
        return self

    def cancel_now(self, now: Optional[datetime] = None) -> "SubscriptionORM":
        self.ends_at = now or utcnow()
        return self

    def resume(self, now: Optional[datetime] = None) -> "SubscriptionORM":
        if not self.on_grace_period(now):
            raise SubscriptionStateError("Unable to resume subscription that is not within grace period.")
        self.ends_at = None
        return self

    def __repr__(self) -> str:
        return f"<SubscriptionORM id={self.id} name={self.name} plan={self.mpc_plan} ends_at={self.ends_at}>"
