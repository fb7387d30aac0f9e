# Файл: src/mpc_cashier/gateway/token_cache.py
import asyncio
import logging
import time
import weakref
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class TokenCache:
    """
    Маленький TTL-кэш с загрузкой по промаху (read-through).

    Загрузка single-flight: на каждый ключ свой asyncio.Lock (отдельный в каждом
    event loop, кэш можно делить между asyncio.run), и после захвата
    замка кэш проверяется повторно. Конкурентные вызовы на холодном кэше
    дожидаются одной загрузки, а не выполняют каждый свою.
    Исключения из загрузчика не кэшируются.
    """

    def __init__(self, default_ttl: int = 3600, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._loading_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[str, asyncio.Lock]]" = (
            weakref.WeakKeyDictionary()
        )

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self._entries[key] = (value, self._clock() + (ttl if ttl is not None else self.default_ttl))

    def forget(self, key: str) -> None:
        self._entries.pop(key, None)

    def _get_loading_lock(self, key: str) -> asyncio.Lock:
        locks = self._loading_locks.setdefault(asyncio.get_running_loop(), {})
        if key not in locks:
            locks[key] = asyncio.Lock()
        return locks[key]

    async def remember(self, key: str, load_func: Callable[[], Awaitable[Any]], ttl: Optional[int] = None) -> Any:
        cached = self.get(key)
        if cached is not None:
            logger.debug("Token cache hit: %s", key)
            return cached

        async with self._get_loading_lock(key):
            # Повторная проверка: пока мы ждали замок, значение мог загрузить другой вызов
            cached = self.get(key)
            if cached is not None:
                return cached

            logger.debug("Token cache miss: %s", key)
            value = await load_func()
            self.set(key, value, ttl)
            return value
