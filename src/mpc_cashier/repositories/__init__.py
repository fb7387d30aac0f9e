from .pg_repositoryCustomer import CustomerRepository
from .pg_repositoryPaymentMethod import PaymentMethodRepository
from .pg_repositorySubscription import SubscriptionRepository

__all__ = [
    "CustomerRepository",
    "PaymentMethodRepository",
    "SubscriptionRepository",
]
