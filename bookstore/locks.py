"""
Bookstore Service — 書籍ごとのロック

同じ書籍への販売処理をプロセス内で直列化する。
プロセスをまたぐ競合は catalog.decrement_stock の条件付き更新で防ぐ。

ロックは使用中(保持中・待機中)の間だけ保持し、
最後の利用者が抜けた時点で捨てる。存在しない書籍 ID を
大量に送られても辞書は増え続けない。
"""

import asyncio
from contextlib import asynccontextmanager


class BookLocks:
    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, book_id: int):
        lock = self._locks.get(book_id)
        if lock is None:
            lock = self._locks[book_id] = asyncio.Lock()
        self._users[book_id] = self._users.get(book_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[book_id] -= 1
            if self._users[book_id] == 0:
                del self._users[book_id]
                del self._locks[book_id]

    def is_locked(self, book_id: int) -> bool:
        lock = self._locks.get(book_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
