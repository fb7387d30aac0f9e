from datetime import datetime, timedelta, timezone

import pytest

from mpc_cashier import Cashier
from mpc_cashier.db import SubscriptionORM, UserORM
from mpc_cashier.exceptions import (
    ApiError,
    NotFoundError,
    PaymentFailedError,
    SubscriptionCreationError,
    SubscriptionStateError,
)
from mpc_cashier.utils.dates import add_months, as_aware

from .conftest import FakeGateway

pytestmark = pytest.mark.asyncio

CONTRACTS = "/api/recurringbillingcontracts"
NOW = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)


# ――― состояния подписки (без БД) ――― #

async def test_subscription_states():
    # --- ARRANGE ---
    fresh = SubscriptionORM(name="default", mpc_plan="pro", trial_ends_at=NOW + timedelta(days=3), ends_at=None)
    grace = SubscriptionORM(name="default", mpc_plan="pro", ends_at=NOW + timedelta(days=1))
    ended = SubscriptionORM(name="default", mpc_plan="pro", ends_at=NOW - timedelta(seconds=1))

    # --- ASSERT ---
    assert fresh.active(NOW) and fresh.on_trial(NOW) and not fresh.cancelled()
    assert not fresh.on_trial(NOW + timedelta(days=3))
    assert grace.active(NOW) and grace.on_grace_period(NOW) and grace.cancelled() and not grace.ended(NOW)
    assert not ended.active(NOW) and ended.ended(NOW) and not ended.on_grace_period(NOW)


async def test_cancel_is_idempotent_and_clamps_month():
    # --- ARRANGE ---
    subscription = SubscriptionORM(name="default", mpc_plan="pro", ends_at=None)

    # --- ACT ---
    subscription.cancel(NOW)
    first_end = subscription.ends_at
    subscription.cancel(NOW + timedelta(days=10))

    # --- ASSERT ---
    assert first_end == datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)
    assert subscription.ends_at == first_end
    assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
    assert add_months(datetime(2025, 12, 15), 1) == datetime(2026, 1, 15)


async def test_resume_only_within_grace_period():
    # --- ARRANGE ---
    subscription = SubscriptionORM(name="default", mpc_plan="pro", ends_at=None)

    # --- ACT & ASSERT ---
    with pytest.raises(SubscriptionStateError):
        subscription.resume(NOW)

    subscription.cancel(NOW)
    subscription.resume(NOW)
    assert subscription.ends_at is None

    subscription.cancel_now(NOW)
    with pytest.raises(SubscriptionStateError):
        subscription.resume(NOW + timedelta(seconds=1))


# ――― SubscriptionBuilder ――― #

async def test_trial_until_wins_in_any_order(cashier: Cashier, user: UserORM):
    # --- ARRANGE ---
    explicit = datetime(2026, 6, 1, tzinfo=timezone.utc)
    billable = cashier.billable(user)

    # --- ACT ---
    days_first = billable.new_subscription("default", "pro").trial_days(14).trial_until(explicit)
    until_first = billable.new_subscription("default", "pro").trial_until(explicit).trial_days(14)
    days_only = billable.new_subscription("default", "pro").trial_days(14)
    skipped = billable.new_subscription("default", "pro").trial_days(14).skip_trial()

    # --- ASSERT ---
    assert days_first.trial_end_date(NOW) == explicit
    assert until_first.trial_end_date(NOW) == explicit
    assert days_only.trial_end_date(NOW) == NOW + timedelta(days=14)
    assert skipped.trial_end_date(NOW) is None


async def test_create_without_payment_method_makes_no_remote_call(cashier: Cashier, gateway: FakeGateway, user: UserORM):
    # --- ACT ---
    with pytest.raises(SubscriptionCreationError, match="No payment method available to create subscription.") as exc_info:
        await cashier.billable(user).new_subscription("default", "pro").create()

    # --- ASSERT ---
    assert isinstance(exc_info.value, ApiError)
    assert not isinstance(exc_info.value, PaymentFailedError)
    assert gateway.requests == []
    assert await cashier.billable(user).subscriptions() == []


async def test_create_subscription_with_token_and_trial(cashier: Cashier, gateway: FakeGateway, user: UserORM):
    # --- ARRANGE ---
    gateway.on("POST", "/api/customers", {"CustomerId": 987})
    gateway.on("POST", CONTRACTS, {"ContractId": 555})
    trial_end = datetime(2030, 3, 15, 9, 30, tzinfo=timezone.utc)
    billable = cashier.billable(user)

    # --- ACT ---
    subscription = await (
        billable.new_subscription("default", "pro-monthly")
        .trial_until(trial_end)
        .with_metadata({"Description": "Pro (metadata)", "Notes": "vip"})
        .create("tok-sub", amount="9.99")
    )

    # --- ASSERT ---
    assert subscription.mpc_plan == "pro-monthly"
    assert subscription.mpc_contract_id == "555"
    assert as_aware(subscription.trial_ends_at) == trial_end
    assert subscription.ends_at is None

    body = gateway.body(gateway.calls("POST", CONTRACTS)[0])
    assert body == {
        "CustomerId": "987",
        "Token": "tok-sub",
        "Amount": 9.99,
        "Frequency": "Monthly",
        "StartDate": "2030-03-15",
        "Description": "Pro (metadata)",
        "Notes": "vip",
    }

    assert (await billable.default_payment_method()).mpc_token == "tok-sub"
    assert await billable.subscribed() is True
    assert await billable.subscribed(plan="pro-monthly") is True
    assert await billable.subscribed(plan="other") is False
    assert await billable.on_trial() is True


async def test_create_with_existing_default_payment_method(cashier: Cashier, gateway: FakeGateway, user: UserORM):
    # --- ARRANGE ---
    user.set_mpc_customer_id("987")
    billable = cashier.billable(user)
    await billable.add_payment_method("tok-default")
    gateway.on("POST", CONTRACTS, {})

    # --- ACT ---
    subscription = await billable.new_subscription("team", "basic").create(frequency="Yearly", description="Team seat")

    # --- ASSERT ---
    body = gateway.body(gateway.calls("POST", CONTRACTS)[0])
    assert body["Token"] == "tok-default"
    assert body["Frequency"] == "Yearly"
    assert body["Description"] == "Team seat"
    assert body["Amount"] == 0.0
    assert subscription.mpc_contract_id is None
    assert subscription.trial_ends_at is None
    assert await billable.on_trial("team") is False
    assert await billable.subscription("default") is None


async def test_gateway_failure_is_subscription_creation_error(cashier: Cashier, gateway: FakeGateway, user: UserORM):
    # --- ARRANGE ---
    user.set_mpc_customer_id("987")
    error_body = {"ResponseStatus": {"Message": "Invalid frequency"}}
    gateway.on("POST", CONTRACTS, error_body, status=400)

    # --- ACT ---
    with pytest.raises(SubscriptionCreationError) as exc_info:
        await cashier.billable(user).new_subscription("default", "pro").create("tok-1")

    # --- ASSERT ---
    assert "Failed to create subscription: Invalid frequency" in str(exc_info.value)
    assert exc_info.value.response == error_body
    assert isinstance(exc_info.value.__cause__, ApiError)
    assert await cashier.billable(user).subscriptions() == []


async def test_cancel_and_resume_through_billable(cashier: Cashier, gateway: FakeGateway, user: UserORM):
    # --- ARRANGE ---
    user.set_mpc_customer_id("987")
    gateway.on("POST", CONTRACTS, {"ContractId": "c-1"})
    billable = cashier.billable(user)
    await billable.new_subscription("default", "pro").create("tok-1")

    # --- ACT ---
    cancelled = await billable.cancel_subscription()
    cancelled_again = await billable.cancel_subscription()

    # --- ASSERT ---
    assert cancelled.ends_at is not None
    assert as_aware(cancelled_again.ends_at) == as_aware(cancelled.ends_at)
    assert await billable.subscribed() is True

    # --- ACT ---
    resumed = await billable.resume_subscription()

    # --- ASSERT ---
    assert resumed.ends_at is None

    # --- ACT ---
    await billable.cancel_subscription(now=True)

    # --- ASSERT ---
    assert await billable.subscribed() is False
    with pytest.raises(SubscriptionStateError):
        await billable.resume_subscription()
    assert (await billable.subscription()).ends_at is not None


async def test_missing_subscription(cashier: Cashier, user: UserORM):
    billable = cashier.billable(user)
    with pytest.raises(NotFoundError):
        await billable.cancel_subscription("nope")
    with pytest.raises(NotFoundError):
        await billable.resume_subscription("nope")
    assert await billable.subscribed("nope") is False


async def test_invalid_amount_rejected_before_remote_calls(cashier: Cashier, gateway: FakeGateway, user: UserORM):
    # --- ARRANGE ---
    billable = cashier.billable(user)
    builder = billable.new_subscription("default", "pro")

    # --- ACT & ASSERT ---
    for amount in ("9,99", "NaN", "-1"):
        with pytest.raises(SubscriptionCreationError, match="Invalid subscription amount"):
            await builder.create("tok-sub", amount=amount)

    assert gateway.requests == []
    assert billable.has_mpc_customer_id() is False
    assert await billable.payment_methods() == []
    assert await billable.subscriptions() == []


async def test_nested_gateway_error_body_is_kept(cashier: Cashier, gateway: FakeGateway, user: UserORM):
    """Ошибка создания клиента приходит как PaymentFailedError, но тело ответа шлюза не теряется."""
    # --- ARRANGE ---
    error_body = {"ResponseStatus": {"ErrorCode": "DuplicateEmail", "Message": "Email already used"}}
    gateway.on("POST", "/api/customers", error_body, status=400)

    # --- ACT ---
    with pytest.raises(SubscriptionCreationError) as exc_info:
        await cashier.billable(user).new_subscription("default", "pro").create("tok-sub")

    # --- ASSERT ---
    assert isinstance(exc_info.value.__cause__, PaymentFailedError)
    assert exc_info.value.response == error_body
    assert "Email already used" in str(exc_info.value)
    assert gateway.calls("POST", CONTRACTS) == []
