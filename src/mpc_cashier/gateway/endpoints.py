# Файл: src/mpc_cashier/gateway/endpoints.py
from pydantic import BaseModel


class Endpoints(BaseModel):
    """
    Набор путей шлюза. Шаблоны форматируются через str.format(),
    поэтому другой шлюз (или другая версия API) подключается подменой этого объекта.
    """
    authenticate: str = "/api/authenticate"
    customers: str = "/api/customers"
    transaction: str = "/api/v2/transaction"
    refund: str = "/api/v2/refund"
    recurring_contracts: str = "/api/recurringbillingcontracts"

    card_tokens: str = "/merchants/{merchant_key}/tokens/cards"
    check_tokens: str = "/merchants/{merchant_key}/tokens/checks"
    customer_tokens: str = "/merchants/{merchant_key}/customers/{customer_key}/tokens"
    pnref_tokens: str = "/merchants/{merchant_key}/tokens"

    qp_merchant_keys: str = "/api/quickpayments/merchants/{merchant_key}/keys"
    qp_tokens: str = "/api/quickpayments/qp-tokens"
    qp_reusable_tokens: str = "/api/quickpayments/tokens"
    qp_charge: str = "/api/v2/transactions/bcp"

    def path(self, name: str, **params) -> str:
        return getattr(self, name).format(**params)
