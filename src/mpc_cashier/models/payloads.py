# Файл: src/mpc_cashier/models/payloads.py

from __future__ import annotations
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal


class GatewayPayload(BaseModel):
    """
    Тело запроса к шлюзу. Поля в snake_case, на проводе PascalCase;
    незаданные (None) поля не отправляются.
    """
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# --- Токены карт и чеков ---

class CardTokenPayload(GatewayPayload):
    merchant_key: int
    token: Optional[str] = None
    card_number: str
    expiration_date: str
    token_format: Optional[str] = None
    customer_key: Optional[Union[int, str]] = None
    name_on_card: Optional[str] = None
    street_address: Optional[str] = None
    postal_code: Optional[str] = None


class CheckTokenPayload(GatewayPayload):
    merchant_key: int
    token: Optional[str] = None
    account_number: str
    routing_number: str
    token_format: Optional[str] = None
    customer_key: Optional[Union[int, str]] = None
    name_on_check: Optional[str] = None
    account_type: Optional[str] = None
    check_type: Optional[str] = None


class PnRefTokenPayload(GatewayPayload):
    merchant_key: int
    pn_ref: int
    token_format: str = "Uid"
    customer_key: Optional[Union[int, str]] = None


# --- QuickPayments ---

class QpCardData(GatewayPayload):
    card_number: str
    expiration_date: str
    cvv: Optional[int] = None
    name_on_card: Optional[str] = None
    street: Optional[str] = None
    zip_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    entry_mode: Optional[str] = None


class QpCheckData(GatewayPayload):
    routing_number: str
    account_number: str
    name_on_check: Optional[str] = None
    check_number: Optional[str] = None
    check_type: Optional[str] = None
    account_type: Optional[str] = None
    sec_code: Optional[str] = Field(None, alias="SECCode")


class QpTokenPayload(GatewayPayload):
    quick_payments_key: str
    card_data: Optional[QpCardData] = None
    check_data: Optional[QpCheckData] = None


class QpInvoiceData(GatewayPayload):
    total_amount: Decimal
    invoice_number: Optional[str] = None


class QpChargePayload(GatewayPayload):
    transaction_type: str = "Sale"
    force_duplicate: bool = True
    token: str
    invoice_data: QpInvoiceData


# --- Транзакции, клиенты, подписки ---

class SalePayload(GatewayPayload):
    amount: Decimal
    currency: str
    token: str
    description: Optional[str] = None
    customer_id: Optional[str] = None


class RefundPayload(GatewayPayload):
    transaction_id: str
    amount: Optional[Decimal] = None


class RecurringContractPayload(GatewayPayload):
    customer_id: Optional[str] = None
    token: str
    amount: Decimal = Decimal("0")
    frequency: str = "Monthly"
    start_date: str
    description: str
