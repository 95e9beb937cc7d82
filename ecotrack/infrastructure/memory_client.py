from __future__ import annotations

import fnmatch
import time
from collections.abc import AsyncIterator
from typing import Any, Callable, Optional


class InMemoryRedis:
    """In-process stand-in for the subset of Redis used by the service.

    Keys honour expiry. Every method runs without awaiting, so operations are
    atomic with respect to other coroutines on the same loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: dict[str, Any] = {}
        self._expires: dict[str, float] = {}
        self._clock = clock

    def _purge(self, key: str) -> None:
        deadline = self._expires.get(key)
        if deadline is not None and deadline <= self._clock():
            self._data.pop(key, None)
            self._expires.pop(key, None)

    def _live_keys(self) -> list[str]:
        for key in list(self._data):
            self._purge(key)
        return list(self._data)

    @staticmethod
    def _to_int(val: Any) -> int:
        if isinstance(val, bytes):
            try:
                return int(val.decode("utf-8"))
            except (ValueError, UnicodeDecodeError):
                return 0
        if isinstance(val, int):
            return val
        return 0

    async def get(self, key: str) -> Optional[Any]:
        self._purge(key)
        val = self._data.get(key)
        if isinstance(val, int):
            return str(val).encode("utf-8")
        return val

    async def set(
        self,
        key: str,
        value: Any,
        ex: Optional[int] = None,
        px: Optional[int] = None,
        nx: bool = False,
    ) -> bool:
        self._purge(key)
        if nx and key in self._data:
            return False
        self._data[key] = value
        self._expires.pop(key, None)
        if ex is not None:
            self._expires[key] = self._clock() + ex
        elif px is not None:
            self._expires[key] = self._clock() + px / 1000
        return True

    async def incr(self, key: str) -> int:
        return await self.incrby(key, 1)

    async def decr(self, key: str) -> int:
        return await self.incrby(key, -1)

    async def incrby(self, key: str, amount: int) -> int:
        self._purge(key)
        new_val = self._to_int(self._data.get(key, 0)) + amount
        self._data[key] = new_val
        return new_val

    async def expire(self, key: str, seconds: int) -> bool:
        return await self.pexpire(key, seconds * 1000)

    async def pexpire(self, key: str, milliseconds: int) -> bool:
        self._purge(key)
        if key not in self._data:
            return False
        self._expires[key] = self._clock() + milliseconds / 1000
        return True

    async def ttl(self, key: str) -> int:
        pttl = await self.pttl(key)
        return pttl if pttl < 0 else int(pttl // 1000)

    async def pttl(self, key: str) -> int:
        self._purge(key)
        if key not in self._data:
            return -2
        deadline = self._expires.get(key)
        if deadline is None:
            return -1
        return int((deadline - self._clock()) * 1000)

    async def delete(self, *keys: str) -> int:
        count = 0
        for k in keys:
            self._purge(k)
            if k in self._data:
                del self._data[k]
                self._expires.pop(k, None)
                count += 1
        return count

    async def exists(self, key: str) -> bool:
        self._purge(key)
        return key in self._data

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None) -> AsyncIterator[str]:
        for key in self._live_keys():
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        pass
