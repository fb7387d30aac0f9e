# Файл: src/mpc_cashier/__init__.py

import importlib
from typing import Any, Optional, Type

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker

from .client import Cashier
from .billable import Billable, BillableEntity, to_major_units
from .subscription_builder import SubscriptionBuilder
from .config import get_settings, CashierConfig, GatewayConfig, PostgresConfig, CustomerColumns
from .gateway import ApiClient, Endpoints, TokenCache
from .services import TokenService, QuickPaymentsService
from .repositories import CustomerRepository, PaymentMethodRepository, SubscriptionRepository
from .models import CardDetails, CheckDetails, CheckAddress

from .exceptions import *


def resolve_model(path: str) -> Type[Any]:
    """'package.module:ClassName' -> класс сущности-владельца."""
    module_name, _, class_name = path.partition(":")
    if not module_name or not class_name:
        raise ConfigurationError(f"Billable model must look like 'module:ClassName', got {path!r}")
    try:
        model = getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot import billable model {path!r}: {e}") from e

    for attr in ("id", "mpc_customer_id", "get_mpc_customer_id", "set_mpc_customer_id"):
        if not hasattr(model, attr):
            raise ConfigurationError(f"Billable model {path!r} has no '{attr}' (use BillableMixin)")
    return model


def _check_customer_column(model: Type[Any], expected: str) -> None:
    # Имя колонки фиксируется при объявлении модели, а не при сборке клиента
    mapper = getattr(model, "__mapper__", None)
    if mapper is None or "mpc_customer_id" not in mapper.attrs:
        return
    actual = mapper.attrs["mpc_customer_id"].columns[0].name
    if actual != expected:
        raise ConfigurationError(
            f"Billable model stores the gateway customer id in column '{actual}', "
            f"but configuration expects '{expected}'"
        )


def _create_engine(config: PostgresConfig) -> AsyncEngine:
    dsn = config.get_pg_dsn()
    if not dsn.startswith("postgresql"):
        return create_async_engine(dsn)
    return create_async_engine(
        dsn,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_recycle=config.pool_recycle,
        pool_pre_ping=config.pool_pre_ping,
        connect_args={
            "server_settings": {
                "application_name": config.application_name
            }
        }
    )


def create_cashier(
    config: Optional[CashierConfig] = None,
    *,
    engine: Optional[AsyncEngine] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    token_cache: Optional[TokenCache] = None,
    endpoints: Optional[Endpoints] = None,
) -> Cashier:
    """
    Фабричная функция для создания и конфигурации Cashier.

    :param config: Единый объект с настройками.
                   Если не предоставлен, используются переменные окружения (MPC_*).
    :param engine: Готовый движок SQLAlchemy; без него движок создаётся по DSN и закрывается в aclose().
    :param http_client: Готовый httpx.AsyncClient (например, с MockTransport в тестах).
    :return: Сконфигурированный экземпляр Cashier.
    """
    if config is None:
        config = get_settings().to_config()

    gateway = config.gateway
    if not gateway.username or not gateway.password:
        raise ConfigurationError("Gateway username and password must be configured (MPC_GATEWAY__USERNAME / MPC_GATEWAY__PASSWORD)")

    model = resolve_model(config.model)
    _check_customer_column(model, config.customer_columns.customer_id)

    # 1. PostgreSQL
    owned_engine = None
    if engine is None:
        engine = owned_engine = _create_engine(config.postgres)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    # 2. Шлюз
    endpoints = endpoints or Endpoints()
    api = ApiClient(
        gateway.username,
        gateway.password,
        gateway.base_url,
        timeout=gateway.timeout,
        token_cache=token_cache,
        token_cache_key=gateway.token_cache_key,
        token_ttl=gateway.token_ttl,
        endpoints=endpoints,
        http_client=http_client,
    )

    # 3. Собираем и возвращаем клиент
    return Cashier(
        api=api,
        tokens=TokenService(api, gateway.merchant_key, endpoints),
        quickpayments=QuickPaymentsService(api, gateway.merchant_key, gateway.quickpayments_key, endpoints),
        customers=CustomerRepository(session_factory, model),
        payment_methods=PaymentMethodRepository(session_factory),
        subscriptions=SubscriptionRepository(session_factory),
        currency=config.currency,
        engine=owned_engine,
    )


__all__ = [
    "Cashier", "create_cashier", "resolve_model",
    "Billable", "BillableEntity", "SubscriptionBuilder", "to_major_units",
    "CashierConfig", "GatewayConfig", "PostgresConfig", "CustomerColumns",
    "ApiClient", "Endpoints", "TokenCache",
    "TokenService", "QuickPaymentsService",
    "CustomerRepository", "PaymentMethodRepository", "SubscriptionRepository",
    "CardDetails", "CheckDetails", "CheckAddress",
    "CashierError", "ConfigurationError", "ApiError", "SubscriptionCreationError",
    "PaymentFailedError", "SubscriptionStateError", "InvalidDetailsError",
    "DatabaseError", "NotFoundError",
]
