# Файл: src/mpc_cashier/services/token_service.py

import logging
import warnings
from typing import Any, Iterable, Mapping, Optional, Union

from mpc_cashier.exceptions import ApiError
from mpc_cashier.gateway import ApiClient, Endpoints
from mpc_cashier.models import (
    CardDetails,
    CheckDetails,
    CardTokenPayload,
    CheckTokenPayload,
    PnRefTokenPayload,
    load_details,
)

logger = logging.getLogger(__name__)

CardInput = Union[CardDetails, Mapping[str, Any]]
CheckInput = Union[CheckDetails, Mapping[str, Any]]


def join_tokens(tokens: Union[str, Iterable[str]]) -> str:
    if isinstance(tokens, str):
        return tokens
    return ",".join(tokens)


class TokenService:
    """
    CRUD многоразовых токенов карт и чеков в рамках одного мерчанта.
    Ошибки шлюза (ApiError) пробрасываются как есть.
    """

    def __init__(self, api: ApiClient, merchant_key: int, endpoints: Endpoints | None = None):
        self._api = api
        self._merchant_key = int(merchant_key)
        self._endpoints = endpoints or api.endpoints

    def _cards_path(self, token: str | None = None) -> str:
        path = self._endpoints.path("card_tokens", merchant_key=self._merchant_key)
        return f"{path}/{token}" if token else path

    def _checks_path(self, token: str | None = None) -> str:
        path = self._endpoints.path("check_tokens", merchant_key=self._merchant_key)
        return f"{path}/{token}" if token else path

    # ――― card tokens ――― #

    async def create_card_token(
        self,
        card_details: CardInput,
        customer_key: Optional[Union[int, str]] = None,
        token_format: str = "Uid",
    ) -> dict:
        card = load_details(CardDetails, card_details)
        payload = CardTokenPayload(
            merchant_key=self._merchant_key,
            card_number=card.number,
            expiration_date=card.expiration_date,
            token_format=token_format,
            customer_key=customer_key or None,
            name_on_card=card.name,
            street_address=card.street,
            postal_code=card.postal_code,
        )
        return await self._api.post(self._cards_path(), payload.to_payload())

    async def get_card_token(self, token: str) -> dict:
        return await self._api.get(self._cards_path(token))

    async def get_card_tokens(self, filters: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._api.get(self._cards_path(), filters)

    async def update_card_token(self, token: str, updates: Mapping[str, Any]) -> dict:
        """Частичное обновление (PATCH)."""
        return await self._api.patch(self._cards_path(token), {"Token": token, **updates})

    async def replace_card_token(self, token: str, card_details: CardInput) -> dict:
        """Полная замена (PUT)."""
        card = load_details(CardDetails, card_details)
        payload = CardTokenPayload(
            merchant_key=self._merchant_key,
            token=token,
            card_number=card.number,
            expiration_date=card.expiration_date,
            name_on_card=card.name,
            street_address=card.street,
            postal_code=card.postal_code,
        )
        return await self._api.put(self._cards_path(token), payload.to_payload())

    async def delete_card_tokens(self, tokens: Union[str, Iterable[str]]) -> None:
        await self._api.delete(self._cards_path(join_tokens(tokens)))

    # ――― check tokens ――― #

    async def create_check_token(
        self,
        check_details: CheckInput,
        customer_key: Optional[Union[int, str]] = None,
        token_format: str = "Uid",
    ) -> dict:
        check = load_details(CheckDetails, check_details)
        payload = CheckTokenPayload(
            merchant_key=self._merchant_key,
            account_number=check.account_number,
            routing_number=check.routing_number,
            token_format=token_format,
            customer_key=customer_key or None,
            name_on_check=check.name,
            account_type=check.account_type,
            check_type=check.check_type,
        )
        return await self._api.post(self._checks_path(), payload.to_payload())

    async def get_check_token(self, token: str) -> dict:
        return await self._api.get(self._checks_path(token))

    async def get_check_tokens(self, filters: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._api.get(self._checks_path(), filters)

    async def update_check_token(self, token: str, updates: Mapping[str, Any]) -> dict:
        return await self._api.patch(self._checks_path(token), {"Token": token, **updates})

    async def replace_check_token(self, token: str, check_details: CheckInput) -> dict:
        check = load_details(CheckDetails, check_details)
        payload = CheckTokenPayload(
            merchant_key=self._merchant_key,
            token=token,
            account_number=check.account_number,
            routing_number=check.routing_number,
            name_on_check=check.name,
            account_type=check.account_type,
            check_type=check.check_type,
        )
        return await self._api.put(self._checks_path(token), payload.to_payload())

    async def delete_check_tokens(self, tokens: Union[str, Iterable[str]]) -> None:
        await self._api.delete(self._checks_path(join_tokens(tokens)))

    # ――― general ――― #

    async def get_customer_tokens(self, customer_key: Union[int, str]) -> Any:
        """Все токены (карты и чеки) клиента."""
        path = self._endpoints.path("customer_tokens", merchant_key=self._merchant_key, customer_key=customer_key)
        return await self._api.get(path)

    async def create_token_from_pnref(
        self,
        pnref: int,
        customer_key: Optional[Union[int, str]] = None,
        token_format: str = "Uid",
    ) -> dict:
        """Токен по ссылке на прошлую транзакцию. В ответе CardToken и/или CheckToken."""
        payload = PnRefTokenPayload(
            merchant_key=self._merchant_key,
            pn_ref=pnref,
            token_format=token_format,
            customer_key=customer_key or None,
        )
        path = self._endpoints.path("pnref_tokens", merchant_key=self._merchant_key)
        return await self._api.post(path, payload.to_payload())

    # ――― legacy ――― #

    async def create_token(self, card_details: CardInput) -> dict:
        warnings.warn("create_token() is deprecated, use create_card_token()", DeprecationWarning, stacklevel=2)
        return await self.create_card_token(card_details)

    async def get_token(self, token: str) -> dict:
        """Сначала ищем как карту, при ошибке пробуем как чек."""
        warnings.warn("get_token() is deprecated, use get_card_token()/get_check_token()", DeprecationWarning, stacklevel=2)
        try:
            return await self.get_card_token(token)
        except ApiError as e:
            logger.debug("Card token lookup failed (%s), trying check token", e)
            return await self.get_check_token(token)

    async def delete_token(self, token: str) -> None:
        warnings.warn("delete_token() is deprecated, use delete_card_tokens()/delete_check_tokens()", DeprecationWarning, stacklevel=2)
        try:
            await self.delete_card_tokens(token)
        except ApiError as e:
            logger.debug("Card token delete failed (%s), trying check token", e)
            await self.delete_check_tokens(token)
