# Файл: src/mpc_cashier/gateway/api_client.py
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Optional
from uuid import UUID

import httpx

from mpc_cashier.exceptions import ApiError
from mpc_cashier.gateway.endpoints import Endpoints
from mpc_cashier.gateway.token_cache import TokenCache

logger = logging.getLogger(__name__)

JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_json(data: Any) -> bytes:
    return json.dumps(data, default=_json_default).encode("utf-8")


def decode_json(response: httpx.Response) -> Any:
    """Тело ответа как JSON; пустое или нечитаемое тело превращается в {}."""
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if data is not None else {}


def error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        status = payload.get("ResponseStatus")
        if isinstance(status, dict) and status.get("Message"):
            return str(status["Message"])
    return fallback


class ApiClient:
    """
    Единственная точка выхода к шлюзу.
    Отвечает за bearer-токен (через TokenCache) и приведение всех ошибок транспорта к ApiError.
    """

    def __init__(
        self,
        username: str,
        password: str,
        base_url: str,
        *,
        timeout: float = 30.0,
        token_cache: TokenCache | None = None,
        token_cache_key: str = "mipaymentchoice_bearer_token",
        token_ttl: int = 3600,
        endpoints: Endpoints | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._username = username
        self._password = password
        self.base_url = base_url.rstrip("/")
        self.endpoints = endpoints or Endpoints()
        self._cache = token_cache or TokenCache(default_ttl=token_ttl)
        self._cache_key = token_cache_key
        self._token_ttl = token_ttl
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ――― authentication ――― #

    async def get_bearer_token(self) -> str:
        return await self._cache.remember(self._cache_key, self._authenticate, ttl=self._token_ttl)

    def forget_bearer_token(self) -> None:
        self._cache.forget(self._cache_key)

    async def _authenticate(self) -> str:
        logger.info("Authenticating with payment gateway as '%s'", self._username)
        try:
            response = await self._http.post(
                self.endpoints.authenticate,
                content=encode_json({"Username": self._username, "Password": self._password}),
                headers=JSON_HEADERS,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            payload = decode_json(e.response)
            message = error_message(payload, str(e))
            logger.warning("Gateway authentication rejected: %s", message)
            raise ApiError(f"Authentication failed: {message}", payload, e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.warning("Gateway authentication failed: %s", e)
            raise ApiError(f"Authentication failed: {str(e) or type(e).__name__}") from e

        data = decode_json(response)
        token = data.get("BearerToken") if isinstance(data, dict) else None
        if not token:
            raise ApiError("Failed to retrieve bearer token", data, response.status_code)
        return token

    # ――― verbs ――― #

    async def get(self, path: str, query: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request("GET", path, query=query)

    async def post(self, path: str, body: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request("POST", path, body=body)

    async def put(self, path: str, body: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request("PUT", path, body=body)

    async def patch(self, path: str, body: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request("PATCH", path, body=body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def request(
        self,
        method: str,
        path: str,
        body: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        token = await self.get_bearer_token()

        kwargs: dict[str, Any] = {"headers": {"Authorization": f"Bearer {token}", **JSON_HEADERS}}
        if body:
            kwargs["content"] = encode_json(body)
        if query:
            kwargs["params"] = dict(query)

        logger.debug("Gateway request %s %s", method, path)
        try:
            response = await self._http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            payload = decode_json(e.response)
            status_code = e.response.status_code
            if status_code == 401:
                # Токен отозван или истёк раньше TTL: следующий вызов аутентифицируется заново
                self.forget_bearer_token()
            message = error_message(payload, str(e))
            logger.warning(
                "Gateway %s %s failed with %s: %s", method, path, status_code, message,
                extra={"method": method, "path": path, "status_code": status_code},
            )
            raise ApiError(message, payload, status_code) from e
        except httpx.HTTPError as e:
            logger.warning("Gateway %s %s transport error: %s", method, path, e)
            raise ApiError(str(e) or type(e).__name__) from e

        return decode_json(response)
