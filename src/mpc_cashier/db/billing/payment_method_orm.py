# mpc_cashier/db/billing/payment_method_orm.py
from __future__ import annotations

from uuid import UUID
from typing import Optional

from sqlalchemy import String, Boolean, ForeignKey, Index, false, text
from sqlalchemy.orm import Mapped, mapped_column
from ..base import Base, CreatedAt, UpdatedAt, UUIDPk


class PaymentMethodORM(Base):
    __tablename__ = "payment_methods"

    id: Mapped[UUIDPk]
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Непрозрачный токен шлюза. Удаление записи не удаляет токен в шлюзе.
    mpc_token: Mapped[str] = mapped_column(String(255), nullable=False)
    # 'card' или 'check'
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="card", server_default="card")

    last_four: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Не более одной записи с is_default=True на пользователя (см. uq_payment_methods_one_default)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]

    __table_args__ = (
        Index("ix_payment_methods_user_id_is_default", "user_id", "is_default"),
        Index(
            "uq_payment_methods_one_default",
            "user_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
    )

    def __repr__(self) -> str:
        return f"<PaymentMethodORM id={self.id} type={self.type} default={self.is_default}>"
