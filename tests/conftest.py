import asyncio
import json
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

# Импортируем Base для создания/удаления таблиц
from mpc_cashier.db.base import Base
from mpc_cashier.db import UserORM
# Импортируем нашу фабрику, чтобы тесты работали как реальное приложение
from mpc_cashier import Cashier, create_cashier
from mpc_cashier.config import CashierConfig, GatewayConfig

GATEWAY_URL = "https://gateway.test"
MERCHANT_KEY = 1234
BEARER_TOKEN = "test-bearer-token"

Responder = Union[Dict[str, Any], List[Any], Callable[[httpx.Request], httpx.Response]]


class FakeGateway:
    """
    Имитация платёжного шлюза поверх httpx.MockTransport.
    Маршруты задаются парой (метод, путь); все запросы записываются.
    Аутентификация отвечает BEARER_TOKEN, пока маршрут для неё не переопределён.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Tuple[int, Responder]] = {}
        self.requests: List[httpx.Request] = []
        self.delay = 0.0

    def on(self, method: str, path: str, body: Responder = None, status: int = 200) -> None:
        self.routes[(method.upper(), path)] = (status, body if body is not None else {})

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        route = self.routes.get((request.method, request.url.path))
        if route is None:
            if (request.method, request.url.path) == ("POST", "/api/authenticate"):
                return httpx.Response(200, json={"BearerToken": BEARER_TOKEN})
            return httpx.Response(404, json={"ResponseStatus": {"Message": f"No route {request.method} {request.url.path}"}})

        status, body = route
        if callable(body):
            return body(request)
        return httpx.Response(status, json=body)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def api_calls(self) -> List[httpx.Request]:
        """Все запросы, кроме аутентификации."""
        return [r for r in self.requests if r.url.path != "/api/authenticate"]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None


def make_config(**gateway_overrides) -> CashierConfig:
    gateway = {
        "username": "merchant-user",
        "password": "merchant-pass",
        "merchant_key": MERCHANT_KEY,
        "base_url": GATEWAY_URL,
        **gateway_overrides,
    }
    return CashierConfig(gateway=GatewayConfig(**gateway))


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture(scope="function")
async def http_client(gateway: FakeGateway):
    async with httpx.AsyncClient(transport=httpx.MockTransport(gateway.handler), base_url=GATEWAY_URL) as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """
    Движок на временной SQLite-базе со всеми таблицами.
    После теста таблицы удаляются для полной изоляции.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def cashier(db_engine, http_client) -> Cashier:
    """
    Собирает Cashier через фабрику create_cashier, как это делает приложение,
    но с SQLite вместо PostgreSQL и MockTransport вместо сети.
    """
    client = create_cashier(make_config(), engine=db_engine, http_client=http_client)
    yield client
    await client.aclose()


@pytest_asyncio.fixture(scope="function")
async def user(cashier: Cashier) -> UserORM:
    return await cashier.customers.add(UserORM(email="jane@example.com", name="Jane Doe"))


@pytest.fixture
def card() -> Dict[str, Any]:
    return {
        "number": "4111111111111111",
        "exp_month": 12,
        "exp_year": 2030,
        "cvc": "123",
        "name": "Jane Doe",
    }


@pytest.fixture
def check() -> Dict[str, Any]:
    return {
        "routing_number": "021000021",
        "account_number": "000123456789",
        "name": "Jane Doe",
        "account_type": "Checking",
    }
