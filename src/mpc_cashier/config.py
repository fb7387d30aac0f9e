# Файл: src/mpc_cashier/config.py

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

# --- 1. Настройки платёжного шлюза ---
class GatewayConfig(BaseModel):
    username: str = ""
    password: str = ""
    merchant_key: int = 0
    # Если не задан, ключ QuickPayments запрашивается у шлюза при каждом вызове
    quickpayments_key: str | None = None
    base_url: str = "https://gateway.mipaymentchoice.com"
    timeout: float = 30.0

    token_ttl: int = 3600
    token_cache_key: str = "mipaymentchoice_bearer_token"

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# --- 2. Настройки PostgreSQL для локальных записей ---
class PostgresConfig(BaseModel):
    user: str = "postgres"
    password: str = "postgres"
    host: str = "localhost"
    port: int = 5432
    db: str = "billing"

    pool_size: int = 5
    max_overflow: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True
    application_name: str = "mpc_cashier"
    # Полный DSN (например, sqlite+aiosqlite:///billing.db) важнее отдельных полей
    dsn: str | None = None

    def get_pg_dsn(self) -> str:
        """Собирает DSN для SQLAlchemy из полей этого объекта."""
        if self.dsn:
            return self.dsn
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"


class CustomerColumns(BaseModel):
    # Имя колонки в таблице владельца, где хранится ID клиента в шлюзе
    customer_id: str = "mpc_customer_id"


# --- 3. Основной класс для явной передачи конфигурации ---
class CashierConfig(BaseModel):
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    currency: str = "usd"
    # module.path:ClassName сущности-владельца (BillableEntity)
    model: str = "mpc_cashier.db.users.users:UserORM"
    customer_columns: CustomerColumns = Field(default_factory=CustomerColumns)


# --- 4. Settings читает всё то же самое из окружения / .env ---
class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter='__',
        env_prefix="MPC_",
        extra='ignore'
    )

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    currency: str = "usd"
    model: str = "mpc_cashier.db.users.users:UserORM"
    customer_columns: CustomerColumns = Field(default_factory=CustomerColumns)

    def to_config(self) -> CashierConfig:
        return CashierConfig(
            gateway=self.gateway,
            postgres=self.postgres,
            currency=self.currency,
            model=self.model,
            customer_columns=self.customer_columns,
        )


# --- Ленивая инициализация ---
_cached_settings: Optional[Settings] = None

def get_settings() -> Settings:
    """
    Возвращает синглтон-экземпляр настроек, создавая его при первом вызове.
    Это предотвращает ошибки валидации при импорте.
    """
    global _cached_settings
    if _cached_settings is None:
        _cached_settings = Settings()
    return _cached_settings
