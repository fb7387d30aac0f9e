# Файл: src/mpc_cashier/subscription_builder.py

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

from mpc_cashier.db import SubscriptionORM
from mpc_cashier.exceptions import ApiError, CashierError, SubscriptionCreationError
from mpc_cashier.models import RecurringContractPayload
from mpc_cashier.utils.dates import utcnow, as_aware

if TYPE_CHECKING:
    from mpc_cashier.billable import Billable

logger = logging.getLogger(__name__)

NO_PAYMENT_METHOD = "No payment method available to create subscription."


def _parse_amount(amount: Union[Decimal, int, str]) -> Decimal:
    try:
        value = Decimal(str(amount))
    except ArithmeticError as e:
        raise SubscriptionCreationError(f"Invalid subscription amount: {amount!r}") from e
    if not value.is_finite() or value < 0:
        raise SubscriptionCreationError(f"Invalid subscription amount: {amount!r}")
    return value


def _gateway_response(error: BaseException) -> Optional[Any]:
    """Тело ответа шлюза из ближайшей ApiError в цепочке __cause__."""
    while error is not None:
        if isinstance(error, ApiError):
            return error.response
        error = error.__cause__
    return None


class SubscriptionBuilder:
    """
    Накопитель параметров подписки до одного вызова create().

        await billable.new_subscription("default", "pro").trial_days(14).create(token, amount="9.99")
    """

    def __init__(self, billable: "Billable", name: str, plan: str):
        self._billable = billable
        self.name = name
        self.plan = plan
        self._trial_days: Optional[int] = None
        self._trial_expires: Optional[datetime] = None
        self._metadata: Dict[str, Any] = {}

    def trial_days(self, days: int) -> "SubscriptionBuilder":
        self._trial_days = days
        return self

    def trial_until(self, expires: datetime) -> "SubscriptionBuilder":
        """Явная дата окончания триала; важнее trial_days, в каком бы порядке их ни задали."""
        self._trial_expires = as_aware(expires)
        return self

    def skip_trial(self) -> "SubscriptionBuilder":
        self._trial_days = None
        self._trial_expires = None
        return self

    def with_metadata(self, metadata: Mapping[str, Any]) -> "SubscriptionBuilder":
        self._metadata = dict(metadata)
        return self

    def trial_end_date(self, now: Optional[datetime] = None) -> Optional[datetime]:
        if self._trial_expires:
            return self._trial_expires
        if self._trial_days:
            return (now or utcnow()) + timedelta(days=self._trial_days)
        return None

    async def create(
        self,
        token: Optional[str] = None,
        *,
        amount: Union[Decimal, int, str] = 0,
        frequency: str = "Monthly",
        description: Optional[str] = None,
    ) -> SubscriptionORM:
        """
        Создаёт контракт регулярных платежей в шлюзе и локальную запись подписки.
        Все ошибки - SubscriptionCreationError (это ApiError, а не PaymentFailedError).
        """
        billable = self._billable
        try:
            amount = _parse_amount(amount)

            # Без токена и без метода по умолчанию падаем до любых запросов к шлюзу
            if not token and not await billable.has_default_payment_method():
                raise SubscriptionCreationError(NO_PAYMENT_METHOD)

            if not billable.has_mpc_customer_id():
                await billable.create_as_mpc_customer()

            if token:
                await billable.add_payment_method(token, default=True)

            payment_method = await billable.default_payment_method()
            if payment_method is None:
                raise SubscriptionCreationError(NO_PAYMENT_METHOD)

            now = utcnow()
            trial_ends_at = self.trial_end_date(now)

            payload = RecurringContractPayload(
                customer_id=billable.mpc_customer_id(),
                token=payment_method.mpc_token,
                amount=amount,
                frequency=frequency,
                start_date=(trial_ends_at or now).date().isoformat(),
                description=description or self.name,
            ).to_payload()
            payload.update(self._metadata)

            api = billable._api
            response = await api.post(api.endpoints.recurring_contracts, payload)
            contract_id = response.get("ContractId") if isinstance(response, dict) else None

            subscription = await billable._cashier.subscriptions.create(
                billable.entity.id,
                self.name,
                self.plan,
                contract_id=None if contract_id is None else str(contract_id),
                trial_ends_at=trial_ends_at,
            )
        except SubscriptionCreationError:
            raise
        except CashierError as e:
            response = _gateway_response(e)
            raise SubscriptionCreationError(f"Failed to create subscription: {e}", response) from e

        logger.info(f"Subscription '{self.name}' on plan {self.plan} created for customer {billable.entity.id}")
        return subscription
