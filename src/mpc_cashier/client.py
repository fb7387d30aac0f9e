import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from mpc_cashier.billable import Billable, BillableEntity
from mpc_cashier.exceptions import ApiError, DatabaseError
from mpc_cashier.gateway import ApiClient
from mpc_cashier.repositories import CustomerRepository, PaymentMethodRepository, SubscriptionRepository
from mpc_cashier.services import QuickPaymentsService, TokenService

logger = logging.getLogger(__name__)


class Cashier:
    """
    Единая точка доступа: клиент шлюза, сервисы токенов и локальные репозитории.
    Операции конкретного клиента - через billable(entity).
    """

    def __init__(
        self,
        api: ApiClient,
        tokens: TokenService,
        quickpayments: QuickPaymentsService,
        customers: CustomerRepository,
        payment_methods: PaymentMethodRepository,
        subscriptions: SubscriptionRepository,
        currency: str = "usd",
        engine: Optional[AsyncEngine] = None,
    ):
        self.api = api
        self.tokens = tokens
        self.quickpayments = quickpayments
        self.customers = customers
        self.payment_methods = payment_methods
        self.subscriptions = subscriptions
        self.currency = currency
        # Движок, созданный фабрикой; чужой движок aclose() не закрывает
        self._engine = engine

    def billable(self, entity: BillableEntity) -> Billable:
        return Billable(entity, self)

    async def check_connections(self) -> dict[str, str]:
        """
        Проверяет доступность PostgreSQL и шлюза (через получение bearer-токена).
        Возвращает словарь со статусами.
        """
        statuses = {}

        # PostgreSQL Check
        try:
            await self.customers.check_connection()
            statuses["postgres"] = "ok"
        except DatabaseError as e:
            statuses["postgres"] = f"failed: {e}"

        # Gateway Check
        try:
            await self.api.get_bearer_token()
            statuses["gateway"] = "ok"
        except ApiError as e:
            statuses["gateway"] = f"failed: {e}"

        return statuses

    async def aclose(self) -> None:
        await self.api.aclose()
        if self._engine is not None:
            await self._engine.dispose()

    async def __aenter__(self) -> "Cashier":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
