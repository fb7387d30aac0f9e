from __future__ import annotations

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ..base import Base, CreatedAt, UUIDPk
from .billable_mixin import BillableMixin


class UserORM(BillableMixin, Base):
    """
    Владелец платёжных методов и подписок по умолчанию.
    Приложение может указать свою модель в настройке `model`; таблица должна называться `users`.
    """
    __tablename__ = "users"

    id: Mapped[UUIDPk]
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[CreatedAt]
