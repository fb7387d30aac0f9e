import pytest

from mpc_cashier import Cashier
from mpc_cashier.exceptions import ApiError, InvalidDetailsError
from mpc_cashier.services.token_service import join_tokens

from .conftest import MERCHANT_KEY, FakeGateway

pytestmark = pytest.mark.asyncio

CARDS = f"/merchants/{MERCHANT_KEY}/tokens/cards"
CHECKS = f"/merchants/{MERCHANT_KEY}/tokens/checks"


async def test_create_card_token_payload(cashier: Cashier, gateway: FakeGateway, card):
    """Необязательные поля уходят только если заданы."""
    # --- ARRANGE ---
    gateway.on("POST", CARDS, {"Token": "card-tok"})

    # --- ACT ---
    response = await cashier.tokens.create_card_token(card, customer_key="987")

    # --- ASSERT ---
    assert response == {"Token": "card-tok"}
    body = gateway.body(gateway.calls("POST", CARDS)[0])
    assert body == {
        "MerchantKey": MERCHANT_KEY,
        "CardNumber": "4111111111111111",
        "ExpirationDate": "1230",
        "TokenFormat": "Uid",
        "CustomerKey": "987",
        "NameOnCard": "Jane Doe",
    }


async def test_expiration_date_from_two_digit_year(cashier: Cashier, gateway: FakeGateway):
    # --- ARRANGE ---
    gateway.on("POST", CARDS, {"Token": "t"})

    # --- ACT ---
    await cashier.tokens.create_card_token({"number": "4111", "exp_month": "3", "exp_year": "27"})

    # --- ASSERT ---
    body = gateway.body(gateway.calls("POST", CARDS)[0])
    assert body["ExpirationDate"] == "0327"
    assert "CustomerKey" not in body
    assert "NameOnCard" not in body


async def test_invalid_card_details_never_reach_gateway(cashier: Cashier, gateway: FakeGateway):
    # --- ACT & ASSERT ---
    with pytest.raises(InvalidDetailsError):
        await cashier.tokens.create_card_token({"exp_month": 12, "exp_year": 2030})
    with pytest.raises(ValueError):
        await cashier.tokens.create_check_token({"routing_number": "021000021"})
    assert gateway.requests == []


async def test_card_token_crud(cashier: Cashier, gateway: FakeGateway, card):
    # --- ARRANGE ---
    gateway.on("GET", f"{CARDS}/tok-1", {"Token": "tok-1", "CardNumber": "XXXX1111"})
    gateway.on("PATCH", f"{CARDS}/tok-1", {"Token": "tok-1"})
    gateway.on("PUT", f"{CARDS}/tok-1", {"Token": "tok-1"})
    gateway.on("GET", CARDS, [{"Token": "tok-1"}])

    # --- ACT ---
    fetched = await cashier.tokens.get_card_token("tok-1")
    await cashier.tokens.update_card_token("tok-1", {"NameOnCard": "J. Doe"})
    await cashier.tokens.replace_card_token("tok-1", card)
    listed = await cashier.tokens.get_card_tokens({"CustomerKey": "987"})

    # --- ASSERT ---
    assert fetched["CardNumber"] == "XXXX1111"
    assert listed == [{"Token": "tok-1"}]
    assert gateway.body(gateway.calls("PATCH", f"{CARDS}/tok-1")[0]) == {"Token": "tok-1", "NameOnCard": "J. Doe"}
    put_body = gateway.body(gateway.calls("PUT", f"{CARDS}/tok-1")[0])
    assert put_body["Token"] == "tok-1"
    assert "TokenFormat" not in put_body
    assert gateway.calls("GET", CARDS)[0].url.params["CustomerKey"] == "987"


async def test_delete_several_tokens_in_one_request(cashier: Cashier, gateway: FakeGateway):
    # --- ARRANGE ---
    gateway.on("DELETE", f"{CHECKS}/a,b,c", {})

    # --- ACT ---
    await cashier.tokens.delete_check_tokens(["a", "b", "c"])

    # --- ASSERT ---
    assert len(gateway.api_calls()) == 1
    assert join_tokens("single") == "single"


async def test_create_check_token_payload(cashier: Cashier, gateway: FakeGateway, check):
    # --- ARRANGE ---
    gateway.on("POST", CHECKS, {"Token": "check-tok"})

    # --- ACT ---
    await cashier.tokens.create_check_token(check)

    # --- ASSERT ---
    assert gateway.body(gateway.calls("POST", CHECKS)[0]) == {
        "MerchantKey": MERCHANT_KEY,
        "AccountNumber": "000123456789",
        "RoutingNumber": "021000021",
        "TokenFormat": "Uid",
        "NameOnCheck": "Jane Doe",
        "AccountType": "Checking",
    }


async def test_customer_tokens_and_pnref(cashier: Cashier, gateway: FakeGateway):
    # --- ARRANGE ---
    gateway.on("GET", f"/merchants/{MERCHANT_KEY}/customers/987/tokens", [{"Token": "x"}])
    gateway.on("POST", f"/merchants/{MERCHANT_KEY}/tokens", {"CardToken": "from-pnref"})

    # --- ACT ---
    tokens = await cashier.tokens.get_customer_tokens("987")
    pnref = await cashier.tokens.create_token_from_pnref(555001)

    # --- ASSERT ---
    assert tokens == [{"Token": "x"}]
    assert pnref == {"CardToken": "from-pnref"}
    assert gateway.body(gateway.calls("POST", f"/merchants/{MERCHANT_KEY}/tokens")[0]) == {
        "MerchantKey": MERCHANT_KEY,
        "PnRef": 555001,
        "TokenFormat": "Uid",
    }


async def test_legacy_get_token_falls_back_to_check(cashier: Cashier, gateway: FakeGateway):
    # --- ARRANGE ---
    gateway.on("GET", f"{CARDS}/legacy", {"ResponseStatus": {"Message": "Not found"}}, status=404)
    gateway.on("GET", f"{CHECKS}/legacy", {"Token": "legacy", "AccountNumber": "XXXX6789"})

    # --- ACT ---
    with pytest.warns(DeprecationWarning):
        result = await cashier.tokens.get_token("legacy")

    # --- ASSERT ---
    assert result["AccountNumber"] == "XXXX6789"
    assert len(gateway.api_calls()) == 2


async def test_legacy_delete_token_raises_when_both_paths_fail(cashier: Cashier, gateway: FakeGateway):
    # --- ACT & ASSERT ---
    with pytest.warns(DeprecationWarning):
        with pytest.raises(ApiError):
            await cashier.tokens.delete_token("missing")
    assert [r.url.path for r in gateway.api_calls()] == [f"{CARDS}/missing", f"{CHECKS}/missing"]
