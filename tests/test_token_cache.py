import asyncio

import pytest

from mpc_cashier.gateway import TokenCache

pytestmark = pytest.mark.asyncio


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


async def test_value_expires_after_ttl():
    # --- ARRANGE ---
    clock = FakeClock()
    cache = TokenCache(default_ttl=60, clock=clock)
    cache.set("key", "value")

    # --- ACT & ASSERT ---
    clock.now += 59
    assert cache.get("key") == "value"
    clock.now += 1
    assert cache.get("key") is None


async def test_remember_loads_once_and_reuses_value():
    # --- ARRANGE ---
    cache = TokenCache()
    calls = []

    async def load():
        calls.append(1)
        return "token-1"

    # --- ACT ---
    first = await cache.remember("bearer", load)
    second = await cache.remember("bearer", load)

    # --- ASSERT ---
    assert first == second == "token-1"
    assert len(calls) == 1


async def test_concurrent_cold_cache_loads_once():
    """Конкурентные вызовы на холодном кэше ждут одну загрузку."""
    # --- ARRANGE ---
    cache = TokenCache()
    calls = []

    async def load():
        calls.append(1)
        await asyncio.sleep(0.05)
        return f"token-{len(calls)}"

    # --- ACT ---
    results = await asyncio.gather(*(cache.remember("bearer", load) for _ in range(10)))

    # --- ASSERT ---
    assert len(calls) == 1
    assert set(results) == {"token-1"}


async def test_loader_errors_are_not_cached():
    # --- ARRANGE ---
    cache = TokenCache()
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("gateway down")
        return "token-ok"

    # --- ACT & ASSERT ---
    with pytest.raises(RuntimeError):
        await cache.remember("bearer", flaky)
    assert cache.get("bearer") is None

    assert await cache.remember("bearer", flaky) == "token-ok"
    assert len(attempts) == 2


async def test_expired_value_is_reloaded():
    # --- ARRANGE ---
    clock = FakeClock()
    cache = TokenCache(default_ttl=3600, clock=clock)
    tokens = iter(["first", "second"])

    async def load():
        return next(tokens)

    # --- ACT ---
    first = await cache.remember("bearer", load, ttl=10)
    clock.now += 11
    second = await cache.remember("bearer", load, ttl=10)

    # --- ASSERT ---
    assert (first, second) == ("first", "second")


async def test_forget_evicts_value():
    cache = TokenCache()
    cache.set("bearer", "token")
    cache.forget("bearer")
    assert cache.get("bearer") is None


async def test_shared_cache_survives_new_event_loops():
    """Один кэш на процесс: каждый asyncio.run - новый event loop со своими замками."""
    # --- ARRANGE ---
    cache = TokenCache()
    calls = []

    async def load():
        calls.append(1)
        await asyncio.sleep(0.01)
        return f"token-{len(calls)}"

    async def burst():
        cache.forget("bearer")
        return await asyncio.gather(*(cache.remember("bearer", load) for _ in range(3)))

    # --- ACT ---
    # asyncio.run в отдельном потоке: текущий loop теста уже запущен
    first = await asyncio.to_thread(asyncio.run, burst())
    second = await asyncio.to_thread(asyncio.run, burst())

    # --- ASSERT ---
    assert first == ["token-1"] * 3
    assert second == ["token-2"] * 3
    assert len(calls) == 2
