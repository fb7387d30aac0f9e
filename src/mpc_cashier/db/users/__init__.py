from .billable_mixin import BillableMixin
from .users import UserORM
