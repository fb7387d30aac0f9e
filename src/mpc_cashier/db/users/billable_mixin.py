from __future__ import annotations
from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from mpc_cashier.config import get_settings


class BillableMixin:
    """
    Подмешивается в ORM-модель владельца (пользователь, организация...).
    Логический атрибут всегда `mpc_customer_id`, а имя колонки в таблице
    берётся из настроек `customer_columns.customer_id` один раз, при объявлении модели.
    """

    @declared_attr
    def mpc_customer_id(cls) -> Mapped[Optional[str]]:
        return mapped_column(
            get_settings().customer_columns.customer_id,
            String(255),
            nullable=True,
            index=True,
        )

    def get_mpc_customer_id(self) -> Optional[str]:
        return self.mpc_customer_id

    def set_mpc_customer_id(self, value: Optional[str]) -> None:
        self.mpc_customer_id = None if value is None else str(value)
