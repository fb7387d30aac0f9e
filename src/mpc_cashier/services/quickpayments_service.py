# Файл: src/mpc_cashier/services/quickpayments_service.py

import logging
from decimal import Decimal
from typing import Any, Mapping, Optional, Union

from mpc_cashier.gateway import ApiClient, Endpoints
from mpc_cashier.models import (
    CardDetails,
    CheckDetails,
    QpCardData,
    QpCheckData,
    QpTokenPayload,
    QpInvoiceData,
    QpChargePayload,
    load_details,
)

logger = logging.getLogger(__name__)


class QuickPaymentsService:
    """
    Одноразовые токены QuickPayments, прямое списание по ним и жизненный цикл
    QuickPayments-ключа мерчанта.
    """

    def __init__(
        self,
        api: ApiClient,
        merchant_key: int,
        quickpayments_key: Optional[str] = None,
        endpoints: Endpoints | None = None,
    ):
        self._api = api
        self._merchant_key = int(merchant_key)
        self._quickpayments_key = quickpayments_key
        self._endpoints = endpoints or api.endpoints

    async def _resolve_key(self, key: Optional[str]) -> str:
        # Явный ключ -> ключ из конфигурации -> запрос к шлюзу (без кэширования)
        if key:
            return key
        if self._quickpayments_key:
            return self._quickpayments_key
        response = await self.get_merchant_key()
        return response.get("QuickPaymentsKey", "") if isinstance(response, dict) else ""

    def _keys_path(self) -> str:
        return self._endpoints.path("qp_merchant_keys", merchant_key=self._merchant_key)

    async def create_qp_token(
        self,
        card_details: Union[CardDetails, Mapping[str, Any]],
        quickpayments_key: Optional[str] = None,
    ) -> dict:
        """Короткоживущий токен по данным карты. В ответе QuickPaymentsToken."""
        card = load_details(CardDetails, card_details)
        payload = QpTokenPayload(
            quick_payments_key=await self._resolve_key(quickpayments_key),
            card_data=QpCardData(
                card_number=card.number,
                expiration_date=card.expiration_date,
                cvv=int(card.cvc) if card.cvc else None,
                name_on_card=card.name,
                street=card.street,
                zip_code=card.zip_code,
                phone=card.phone,
                email=card.email,
                entry_mode=card.entry_mode,
            ),
        )
        return await self._api.post(self._endpoints.qp_tokens, payload.to_payload())

    async def create_qp_token_from_check(
        self,
        check_details: Union[CheckDetails, Mapping[str, Any]],
        quickpayments_key: Optional[str] = None,
    ) -> dict:
        check = load_details(CheckDetails, check_details)
        payload = QpTokenPayload(
            quick_payments_key=await self._resolve_key(quickpayments_key),
            check_data=QpCheckData(
                routing_number=check.routing_number,
                account_number=check.account_number,
                name_on_check=check.name,
                check_number=check.check_number,
                check_type=check.check_type,
                account_type=check.account_type,
                sec_code=check.sec_code,
            ),
        ).to_payload()
        if check.address is not None:
            # Адрес уходит в фиксированной схеме, включая пустые поля
            payload["CheckData"]["Address"] = check.address.to_gateway()
        return await self._api.post(self._endpoints.qp_tokens, payload)

    async def create_token_from_qp_token(
        self,
        qp_token: str,
        quickpayments_key: Optional[str] = None,
        token_format: str = "Uid",
    ) -> dict:
        """Обмен одноразового токена на многоразовый (поле Token в ответе)."""
        return await self._api.post(self._endpoints.qp_reusable_tokens, {
            "QuickPaymentsKey": await self._resolve_key(quickpayments_key),
            "QuickPaymentsToken": qp_token,
            "TokenFormat": token_format,
        })

    async def get_merchant_key(self) -> dict:
        return await self._api.get(self._keys_path())

    async def create_merchant_key(self) -> dict:
        return await self._api.post(self._keys_path(), {"MerchantKey": self._merchant_key})

    async def delete_merchant_key(self) -> dict:
        return await self._api.delete(self._keys_path())

    async def charge(
        self,
        qp_token: str,
        amount: Decimal,
        description: Optional[str] = None,
        invoice_number: Optional[str] = None,
    ) -> dict:
        """Продажа по QP-токену. amount в основных единицах валюты (доллары, не центы)."""
        payload = QpChargePayload(
            token=qp_token,
            invoice_data=QpInvoiceData(
                total_amount=amount,
                invoice_number=invoice_number or description,
            ),
        )
        logger.info("QuickPayments sale for %s", amount)
        return await self._api.post(self._endpoints.qp_charge, payload.to_payload())
