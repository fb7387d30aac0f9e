# mpc_cashier/db/__init__.py

from .base import Base

from .users.billable_mixin import BillableMixin
from .users.users import UserORM

# таблицы, которые от них зависят
from .billing.payment_method_orm import PaymentMethodORM
from .billing.subscription_orm import SubscriptionORM


__all__ = [
    "Base",
    "BillableMixin",
    "UserORM",
    "PaymentMethodORM",
    "SubscriptionORM",
]
