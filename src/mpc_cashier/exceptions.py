from typing import Any, Optional


class CashierError(Exception):
    """Base class."""


class ConfigurationError(CashierError):
    pass


class ApiError(CashierError):
    """
    Любой неуспешный вызов шлюза: сообщение + разобранное тело ответа,
    чтобы вызывающий мог посмотреть коды ошибок конкретного шлюза.
    """

    def __init__(self, message: str = "", response: Optional[Any] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.response = response if response is not None else {}
        self.status_code = status_code


class SubscriptionCreationError(ApiError):
    pass


class PaymentFailedError(CashierError):
    pass


class SubscriptionStateError(CashierError):
    pass


class InvalidDetailsError(CashierError, ValueError):
    pass


class DatabaseError(CashierError):
    pass


class NotFoundError(CashierError):
    pass
