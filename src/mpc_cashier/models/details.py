# Файл: src/mpc_cashier/models/details.py

from __future__ import annotations
from typing import Any, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mpc_cashier.exceptions import InvalidDetailsError

# Реквизиты, которые передаёт приложение. Обязательные поля проверяются здесь,
# до того как что-либо уйдёт в шлюз.

class CardDetails(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    number: str = Field(..., min_length=1)
    exp_month: int = Field(..., ge=1, le=12)
    exp_year: str = Field(..., pattern=r"^\d{2}(\d{2})?$")
    cvc: Optional[str] = Field(None, pattern=r"^\d{3,4}$")
    name: Optional[str] = None
    street: Optional[str] = None
    postal_code: Optional[str] = None
    zip_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    entry_mode: Optional[str] = None

    @property
    def expiration_date(self) -> str:
        """MMYY: месяц и две последние цифры года."""
        return f"{self.exp_month:02d}{int(self.exp_year[-2:]):02d}"


class CheckAddress(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    line1: Optional[str] = None
    street: Optional[str] = None
    line2: Optional[str] = None
    line3: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    def to_gateway(self) -> dict[str, Optional[str]]:
        """Фиксированная схема адреса шлюза; страна по умолчанию USA."""
        return {
            "StreetAddress1": self.line1 or self.street,
            "StreetAddress2": self.line2,
            "StreetAddress3": self.line3,
            "City": self.city,
            "StateOrProvinceCode": self.state,
            "PostalCode": self.zip or self.postal_code,
            "CountryCode": self.country or "USA",
        }


class CheckDetails(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    routing_number: str = Field(..., min_length=1)
    account_number: str = Field(..., min_length=1)
    name: Optional[str] = None
    account_type: Optional[str] = None
    check_type: Optional[str] = None
    check_number: Optional[str] = None
    sec_code: Optional[str] = None
    address: Optional[CheckAddress] = None


DetailsT = TypeVar("DetailsT", bound=BaseModel)


def load_details(model: Type[DetailsT], details: Union[DetailsT, Mapping[str, Any]]) -> DetailsT:
    """Принимает готовую модель или словарь; неполные реквизиты -> InvalidDetailsError."""
    if isinstance(details, model):
        return details
    try:
        return model.model_validate(details)
    except ValidationError as e:
        raise InvalidDetailsError(f"Invalid {model.__name__}: {e}") from e
