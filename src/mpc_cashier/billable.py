# Файл: src/mpc_cashier/billable.py

from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterator, List, Mapping, Optional, Protocol, Union, runtime_checkable
from uuid import UUID

from mpc_cashier.db import PaymentMethodORM, SubscriptionORM
from mpc_cashier.exceptions import CashierError, NotFoundError, PaymentFailedError
from mpc_cashier.models import CardDetails, CheckDetails, RefundPayload, SalePayload, load_details

if TYPE_CHECKING:
    from mpc_cashier.client import Cashier
    from mpc_cashier.subscription_builder import SubscriptionBuilder

logger = logging.getLogger(__name__)


@runtime_checkable
class BillableEntity(Protocol):
    """Всё, что нужно знать о клиенте: id, имя/email и пара аксессоров для ID клиента в шлюзе."""
    id: Any
    email: Optional[str]

    def get_mpc_customer_id(self) -> Optional[str]: ...

    def set_mpc_customer_id(self, value: Optional[str]) -> None: ...


def to_major_units(amount: int) -> Decimal:
    """Центы -> доллары: 500 -> Decimal('5.00')."""
    return (Decimal(int(amount)) / 100).quantize(Decimal("0.01"))


def _coerce_uuid(value: Union[UUID, str]) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


@contextmanager
def payment_failure(message: str) -> Iterator[None]:
    """Любая ошибка библиотеки внутри блока превращается в PaymentFailedError."""
    try:
        yield
    except PaymentFailedError:
        raise
    except CashierError as e:
        raise PaymentFailedError(f"{message}: {e}") from e


class Billable:
    """
    Платёжные операции клиента. Логика написана один раз против BillableEntity
    и собрана из ApiClient, TokenService, QuickPaymentsService и локальных репозиториев.
    Экземпляр выдаёт Cashier.billable(entity).
    """

    def __init__(self, entity: BillableEntity, cashier: "Cashier"):
        self.entity = entity
        self._cashier = cashier
        self._api = cashier.api
        self._tokens = cashier.tokens
        self._quickpayments = cashier.quickpayments

    # ――― customer identity ――― #

    def mpc_customer_id(self) -> Optional[str]:
        return self.entity.get_mpc_customer_id()

    def has_mpc_customer_id(self) -> bool:
        return self.mpc_customer_id() is not None

    async def create_as_mpc_customer(self, overrides: Optional[Mapping[str, Any]] = None) -> "Billable":
        """
        Создаёт клиента в шлюзе и сохраняет его ID в сущность.
        Если шлюз не вернул CustomerId, ничего не сохраняется (ошибкой это не считается).
        Если ID не удалось записать в базу, сущность сохраняет прежнее значение.
        """
        payload = {
            "Name": getattr(self.entity, "name", None) or self.entity.email,
            "Email": self.entity.email,
            **(overrides or {}),
        }
        with payment_failure("Failed to create gateway customer"):
            response = await self._api.post(self._api.endpoints.customers, payload)
            customer_id = response.get("CustomerId") if isinstance(response, dict) else None
            if customer_id is None:
                logger.warning(f"Gateway did not return CustomerId for customer {self.entity.id}")
                return self

            previous = self.entity.get_mpc_customer_id()
            self.entity.set_mpc_customer_id(str(customer_id))
            try:
                await self._cashier.customers.save_customer_id(self.entity)
            except Exception:
                # В памяти остаётся то же, что в базе
                self.entity.set_mpc_customer_id(previous)
                raise
            logger.info(f"Created gateway customer {customer_id} for {self.entity.id}")
        return self

    # ――― payment methods ――― #

    async def payment_methods(self) -> List[PaymentMethodORM]:
        return await self._cashier.payment_methods.list_for_user(self.entity.id)

    async def default_payment_method(self) -> Optional[PaymentMethodORM]:
        return await self._cashier.payment_methods.get_default(self.entity.id)

    async def has_payment_method(self) -> bool:
        return await self._cashier.payment_methods.count_for_user(self.entity.id) > 0

    async def has_default_payment_method(self) -> bool:
        return await self.default_payment_method() is not None

    async def add_payment_method(
        self,
        token: str,
        *,
        default: Optional[bool] = None,
        type: str = "card",
        last_four: Optional[str] = None,
        brand: Optional[str] = None,
    ) -> PaymentMethodORM:
        """
        Сохраняет токен как платёжный метод. Без явного `default` метод становится
        основным, только если он у клиента первый.
        """
        with payment_failure("Failed to add payment method"):
            if not self.has_mpc_customer_id():
                await self.create_as_mpc_customer()
            return await self._cashier.payment_methods.add(
                self.entity.id,
                token,
                type=type,
                last_four=last_four,
                brand=brand,
                is_default=default,
            )

    async def update_default_payment_method(self, payment_method: Union[PaymentMethodORM, UUID, str]) -> PaymentMethodORM:
        payment_method_id = payment_method.id if isinstance(payment_method, PaymentMethodORM) else payment_method
        with payment_failure("Failed to update default payment method"):
            try:
                payment_method_id = _coerce_uuid(payment_method_id)
            except ValueError as e:
                raise NotFoundError(f"Invalid payment method id {payment_method_id!r}") from e
            return await self._cashier.payment_methods.make_default(self.entity.id, payment_method_id)

    async def delete_payment_method(self, payment_method: Union[PaymentMethodORM, UUID, str]) -> bool:
        """Удаляет локальную запись. Неизвестный id - не ошибка, возвращается False."""
        payment_method_id = payment_method.id if isinstance(payment_method, PaymentMethodORM) else payment_method
        with payment_failure("Failed to delete payment method"):
            try:
                payment_method_id = _coerce_uuid(payment_method_id)
            except ValueError:
                return False
            return await self._cashier.payment_methods.delete_for_user(self.entity.id, payment_method_id)

    # ――― subscriptions ――― #

    def new_subscription(self, name: str, plan: str) -> "SubscriptionBuilder":
        from mpc_cashier.subscription_builder import SubscriptionBuilder
        return SubscriptionBuilder(self, name, plan)

    async def subscriptions(self) -> List[SubscriptionORM]:
        return await self._cashier.subscriptions.list_for_user(self.entity.id)

    async def subscription(self, name: str = "default") -> Optional[SubscriptionORM]:
        return await self._cashier.subscriptions.get_by_name(self.entity.id, name)

    async def subscribed(self, name: str = "default", plan: Optional[str] = None) -> bool:
        subscription = await self.subscription(name)
        if subscription is None or not subscription.active():
            return False
        return plan is None or subscription.mpc_plan == plan

    async def on_trial(self, name: str = "default", plan: Optional[str] = None) -> bool:
        subscription = await self.subscription(name)
        if subscription is None:
            return False
        if plan is not None and subscription.mpc_plan != plan:
            return False
        return subscription.on_trial()

    async def _require_subscription(self, name: str) -> SubscriptionORM:
        subscription = await self.subscription(name)
        if subscription is None:
            raise NotFoundError(f"Subscription '{name}' not found for customer {self.entity.id}.")
        return subscription

    async def cancel_subscription(self, name: str = "default", *, now: bool = False) -> SubscriptionORM:
        subscription = await self._require_subscription(name)
        if now:
            return await self._cashier.subscriptions.cancel_now(subscription.id)
        return await self._cashier.subscriptions.cancel(subscription.id)

    async def resume_subscription(self, name: str = "default") -> SubscriptionORM:
        subscription = await self._require_subscription(name)
        return await self._cashier.subscriptions.resume(subscription.id)

    # ――― charges ――― #

    async def charge(
        self,
        amount: int,
        *,
        payment_method: Union[PaymentMethodORM, str, None] = None,
        currency: Optional[str] = None,
        description: Optional[str] = None,
    ) -> dict:
        """Списание. amount в центах (минимальных единицах валюты)."""
        with payment_failure("Charge failed"):
            if payment_method is None:
                payment_method = await self.default_payment_method()
            if not payment_method:
                raise PaymentFailedError("No payment method available for charge.")

            token = payment_method.mpc_token if isinstance(payment_method, PaymentMethodORM) else str(payment_method)
            payload = SalePayload(
                amount=to_major_units(amount),
                currency=currency or self._cashier.currency,
                token=token,
                description=description,
                customer_id=self.mpc_customer_id(),
            )
            logger.info(f"Charging {payload.amount} {payload.currency}", extra={"customer_id": self.entity.id})
            return await self._api.post(self._api.endpoints.transaction, payload.to_payload())

    async def refund(self, transaction_id: str, amount: Optional[int] = None) -> dict:
        """Без amount - полный возврат, иначе частичный (amount в центах)."""
        payload = RefundPayload(
            transaction_id=str(transaction_id),
            amount=to_major_units(amount) if amount else None,
        )
        with payment_failure("Refund failed"):
            logger.info(f"Refunding transaction {transaction_id}", extra={"customer_id": self.entity.id})
            return await self._api.post(self._api.endpoints.refund, payload.to_payload())

    # ――― QuickPayments ――― #

    async def create_quick_payments_token(self, card_details: Union[CardDetails, Mapping[str, Any]]) -> str:
        """QP-токен по карте; пустая строка, если шлюз его не вернул."""
        with payment_failure("Failed to create QuickPayments token"):
            response = await self._quickpayments.create_qp_token(card_details)
        return self._qp_token_from(response)

    async def create_quick_payments_token_from_check(self, check_details: Union[CheckDetails, Mapping[str, Any]]) -> str:
        with payment_failure("Failed to create QuickPayments token"):
            response = await self._quickpayments.create_qp_token_from_check(check_details)
        return self._qp_token_from(response)

    def _qp_token_from(self, response: Any) -> str:
        token = response.get("QuickPaymentsToken") if isinstance(response, dict) else None
        if not token:
            logger.warning(f"Gateway did not return QuickPaymentsToken for customer {self.entity.id}")
            return ""
        return token

    async def charge_with_quick_payments(
        self,
        qp_token: str,
        amount: int,
        *,
        description: Optional[str] = None,
        invoice_number: Optional[str] = None,
    ) -> dict:
        with payment_failure("QuickPayments charge failed"):
            return await self._quickpayments.charge(
                qp_token,
                to_major_units(amount),
                description=description,
                invoice_number=invoice_number,
            )

    async def add_payment_method_from_quick_payments(
        self,
        qp_token: str,
        *,
        default: Optional[bool] = None,
        type: str = "card",
        last_four: Optional[str] = None,
        brand: Optional[str] = None,
    ) -> PaymentMethodORM:
        """Меняет одноразовый QP-токен на многоразовый и сохраняет его как платёжный метод."""
        with payment_failure("Failed to add payment method from QuickPayments"):
            response = await self._quickpayments.create_token_from_qp_token(qp_token)
            token = response.get("Token") if isinstance(response, dict) else None
            if not token:
                raise PaymentFailedError("Failed to convert QuickPayments token to reusable token.")
            return await self.add_payment_method(token, default=default, type=type, last_four=last_four, brand=brand)

    # ――― tokens ――― #

    def _customer_key(self) -> Optional[str]:
        return self.mpc_customer_id()

    async def tokenize_card(
        self,
        card_details: Union[CardDetails, Mapping[str, Any]],
        save_as_payment_method: bool = False,
        *,
        default: Optional[bool] = None,
    ) -> Union[str, PaymentMethodORM]:
        """
        Создаёт токен карты. С save_as_payment_method=True сразу сохраняет его
        как платёжный метод (с last_four и brand), иначе возвращает строку токена.
        """
        with payment_failure("Card tokenization failed"):
            card = load_details(CardDetails, card_details)
            response = await self._tokens.create_card_token(card, self._customer_key())
            token = response.get("Token") if isinstance(response, dict) else None
            if not token:
                raise PaymentFailedError("Card tokenization failed: gateway returned no token.")

            if not save_as_payment_method:
                return token
            card_number = response.get("CardNumber") or card.number
            return await self.add_payment_method(
                token,
                default=default,
                type="card",
                last_four=card_number[-4:] or None,
                brand=response.get("CardType"),
            )

    async def tokenize_check(
        self,
        check_details: Union[CheckDetails, Mapping[str, Any]],
        save_as_payment_method: bool = False,
        *,
        default: Optional[bool] = None,
    ) -> Union[str, PaymentMethodORM]:
        with payment_failure("Check tokenization failed"):
            check = load_details(CheckDetails, check_details)
            response = await self._tokens.create_check_token(check, self._customer_key())
            token = response.get("Token") if isinstance(response, dict) else None
            if not token:
                raise PaymentFailedError("Check tokenization failed: gateway returned no token.")

            if not save_as_payment_method:
                return token
            account_number = response.get("AccountNumber") or check.account_number
            return await self.add_payment_method(
                token,
                default=default,
                type="check",
                last_four=account_number[-4:] or None,
            )

    async def get_tokens(self) -> Any:
        """Токены клиента в шлюзе. Клиента ещё нет - пустой список, без запроса."""
        if not self.has_mpc_customer_id():
            return []
        with payment_failure("Failed to retrieve tokens"):
            return await self._tokens.get_customer_tokens(self.mpc_customer_id())

    async def update_card_token(self, token: str, updates: Mapping[str, Any]) -> dict:
        with payment_failure("Failed to update card token"):
            return await self._tokens.update_card_token(token, updates)

    async def update_check_token(self, token: str, updates: Mapping[str, Any]) -> dict:
        with payment_failure("Failed to update check token"):
            return await self._tokens.update_check_token(token, updates)

    async def delete_card_token(self, token: str) -> None:
        with payment_failure("Failed to delete card token"):
            await self._tokens.delete_card_tokens(token)

    async def delete_check_token(self, token: str) -> None:
        with payment_failure("Failed to delete check token"):
            await self._tokens.delete_check_tokens(token)

    async def tokenize_from_transaction(self, pnref: int) -> dict:
        """Токен из PnRef прошлой транзакции; в ответе CardToken и/или CheckToken."""
        with payment_failure("Failed to create token from transaction"):
            return await self._tokens.create_token_from_pnref(pnref, self._customer_key())
